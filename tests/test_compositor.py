#!/usr/bin/env python3

"""
Pytest coverage for side-by-side frame compositing.
"""

# Standard Library
import os
import sys
from fractions import Fraction

# PIP3 modules
import numpy
import pytest
from PIL import Image

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
	sys.path.insert(0, REPO_ROOT)

# local repo modules
from spatialsbslib.media.compositor import FrameCompositor
from spatialsbslib.media.demux import StereoView
from spatialsbslib.media.demux import TaggedBuffer

#============================================

def _solid_buffer(view: StereoView, width: int, height: int, color: tuple) -> TaggedBuffer:
	pixels = numpy.zeros((height, width, 4), dtype=numpy.uint8)
	pixels[:, :] = color
	return TaggedBuffer(view, pixels)

#============================================

def test_composite_size_unit_scale() -> None:
	compositor = FrameCompositor(1.0)
	assert compositor.composite_size((1920, 1080), (1920, 1080)) == (1920, 540)

#============================================

def test_composite_size_retina_scale() -> None:
	compositor = FrameCompositor(2.0)
	assert compositor.composite_size((1920, 1080), (1920, 1080)) == (960, 270)

#============================================

def test_composite_size_truncates_each_half() -> None:
	compositor = FrameCompositor(1.0)
	# 101 / 2 truncates to 50 per eye
	assert compositor.composite_size((101, 51), (101, 51)) == (100, 25)

#============================================

def test_invalid_scale_factor_rejected() -> None:
	with pytest.raises(RuntimeError):
		FrameCompositor(0)

#============================================

def test_left_eye_in_left_half_right_eye_in_right_half() -> None:
	compositor = FrameCompositor(1.0)
	left = _solid_buffer(StereoView.LEFT_EYE, 64, 32, (255, 0, 0, 255))
	right = _solid_buffer(StereoView.RIGHT_EYE, 64, 32, (0, 0, 255, 255))
	frame = compositor.compose_sample(left, right, Fraction(1, 30))
	assert frame.image.size == (64, 16)
	assert frame.image.mode == 'RGBA'
	assert frame.presentation_time == Fraction(1, 30)
	pixels = numpy.asarray(frame.image)
	assert tuple(pixels[8, 0]) == (255, 0, 0, 255)
	assert tuple(pixels[8, 31]) == (255, 0, 0, 255)
	assert tuple(pixels[8, 32]) == (0, 0, 255, 255)
	assert tuple(pixels[8, 63]) == (0, 0, 255, 255)

#============================================

def test_compose_is_deterministic() -> None:
	compositor = FrameCompositor(1.0)
	rng = numpy.random.default_rng(7)
	left = Image.fromarray(rng.integers(0, 255, (40, 60, 4), dtype=numpy.uint8))
	right = Image.fromarray(rng.integers(0, 255, (40, 60, 4), dtype=numpy.uint8))
	first = numpy.asarray(compositor.compose(left, right))
	second = numpy.asarray(compositor.compose(left, right))
	assert numpy.array_equal(first, second)

#============================================

def test_mismatched_eye_sizes_rejected() -> None:
	compositor = FrameCompositor(1.0)
	left = Image.new('RGBA', (64, 32))
	right = Image.new('RGBA', (32, 32))
	with pytest.raises(RuntimeError):
		compositor.compose(left, right)

#============================================

def test_tiny_eyes_produce_empty_composite_error() -> None:
	compositor = FrameCompositor(2.0)
	left = Image.new('RGBA', (2, 2))
	right = Image.new('RGBA', (2, 2))
	with pytest.raises(RuntimeError):
		compositor.compose(left, right)
