#!/usr/bin/env python3

"""
Conversion error taxonomy.

Fatal conditions are raised as ConversionError subclasses and carry the
pipeline stage that failed. Per-sample conditions (rejected appends and
incomplete samples) are counted by the converter instead of raised.
"""

#============================================

class ConversionError(RuntimeError):
	stage = "convert"

	def __init__(self, message: str, detail: str = None):
		super().__init__(message)
		self.detail = detail

	#============================
	def __str__(self) -> str:
		text = super().__str__()
		if self.detail:
			return f"{text}: {self.detail}"
		return text

#============================================

class NotSpatialVideoError(ConversionError):
	stage = "inspect"

#============================================

class InvalidVideoError(ConversionError):
	stage = "inspect"

#============================================

class SinkOpenError(ConversionError):
	stage = "open"

#============================================

class FinalizeError(ConversionError):
	stage = "finalize"

#============================================

class DecodeError(ConversionError):
	stage = "reading"

#============================================

class ConversionCancelled(ConversionError):
	stage = "reading"

#============================================

class RenderError(RuntimeError):
	pass
