#!/usr/bin/env python3

# Standard Library
import os
import sys
import unittest
from fractions import Fraction

# PIP3 modules
import numpy

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
	sys.path.insert(0, REPO_ROOT)

from spatialsbslib.media.demux import StereoSample
from spatialsbslib.media.demux import StereoView
from spatialsbslib.media.demux import TaggedBuffer
from spatialsbslib.media.demux import demux_sample

#============================================

def _buffer(view: StereoView, width: int = 8, height: int = 4) -> TaggedBuffer:
	return TaggedBuffer(view, numpy.zeros((height, width, 4), dtype=numpy.uint8))

#============================================

class DemuxSampleTest(unittest.TestCase):
	#============================================
	def test_both_eyes_returned_in_order(self) -> None:
		left = _buffer(StereoView.LEFT_EYE)
		right = _buffer(StereoView.RIGHT_EYE)
		# order in the tagged set must not matter
		sample = StereoSample([right, left], Fraction(0))
		pair = demux_sample(sample)
		self.assertIsNotNone(pair)
		self.assertIs(pair[0], left)
		self.assertIs(pair[1], right)
		self.assertEqual(pair[0].width, pair[1].width)
		self.assertEqual(pair[0].height, pair[1].height)

	#============================================
	def test_missing_tagged_set(self) -> None:
		self.assertIsNone(demux_sample(StereoSample(None, Fraction(0))))
		self.assertIsNone(demux_sample(StereoSample([], Fraction(0))))

	#============================================
	def test_single_eye_is_incomplete(self) -> None:
		sample = StereoSample([_buffer(StereoView.LEFT_EYE)], Fraction(0))
		self.assertIsNone(demux_sample(sample))
		sample = StereoSample([_buffer(StereoView.RIGHT_EYE)], Fraction(0))
		self.assertIsNone(demux_sample(sample))

	#============================================
	def test_mismatched_eye_sizes_are_incomplete(self) -> None:
		sample = StereoSample([
			_buffer(StereoView.LEFT_EYE, 8, 4),
			_buffer(StereoView.RIGHT_EYE, 6, 4),
		], Fraction(0))
		self.assertIsNone(demux_sample(sample))

	#============================================
	def test_to_image_is_rgba(self) -> None:
		tagged = _buffer(StereoView.LEFT_EYE, 8, 4)
		image = tagged.to_image()
		self.assertEqual(image.mode, 'RGBA')
		self.assertEqual(image.size, (8, 4))
