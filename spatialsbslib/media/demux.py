#!/usr/bin/env python3

# Standard Library
import enum

# PIP3 modules
import numpy
from PIL import Image

#============================================

class StereoView(enum.Enum):
	LEFT_EYE = "left"
	RIGHT_EYE = "right"

#============================================

class TaggedBuffer():
	"""One decoded view of a sample: an RGBA uint8 array tagged by eye."""

	def __init__(self, view: StereoView, pixels: numpy.ndarray):
		self.view = view
		self.pixels = pixels

	#============================
	@property
	def width(self) -> int:
		return int(self.pixels.shape[1])

	#============================
	@property
	def height(self) -> int:
		return int(self.pixels.shape[0])

	#============================
	def to_image(self) -> Image.Image:
		# (height, width, 4) uint8 arrays map to RGBA
		return Image.fromarray(numpy.ascontiguousarray(self.pixels))

#============================================

class StereoSample():
	def __init__(self, tagged_buffers, presentation_time, index: int = 0):
		# None when the decoder produced no tagged buffer set for this sample
		self.tagged_buffers = tagged_buffers
		self.presentation_time = presentation_time
		self.index = index

#============================================

def find_view(tagged_buffers: list, view: StereoView):
	for tagged in tagged_buffers:
		if tagged.view is view:
			return tagged
	return None

#============================================

def demux_sample(sample: StereoSample):
	"""
	Split a sample into its (left, right) tagged buffers.

	Returns None when the tagged buffer set is absent, lacks an eye, or
	holds two eyes of different sizes.
	"""
	if sample is None or not sample.tagged_buffers:
		return None
	left = find_view(sample.tagged_buffers, StereoView.LEFT_EYE)
	right = find_view(sample.tagged_buffers, StereoView.RIGHT_EYE)
	if left is None or right is None:
		return None
	if left.pixels.shape != right.pixels.shape:
		return None
	return (left, right)
