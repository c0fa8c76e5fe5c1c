#!/usr/bin/env python3

"""
Pytest coverage for pooled pixel buffers and the render context.
"""

# Standard Library
import os
import sys

# PIP3 modules
import numpy
import pytest
from PIL import Image

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
	sys.path.insert(0, REPO_ROOT)

# local repo modules
from spatialsbslib.core.errors import RenderError
from spatialsbslib.media.pixel_pool import PixelBuffer
from spatialsbslib.media.pixel_pool import PixelBufferPool
from spatialsbslib.media.pixel_pool import RenderContext

#============================================

def test_lease_returns_buffer_on_exit() -> None:
	pool = PixelBufferPool(8, 4, 2)
	with pool.lease() as lease:
		assert lease is not None
		assert pool.available == 1
	assert pool.available == 2

#============================================

def test_lease_returns_buffer_on_error() -> None:
	pool = PixelBufferPool(8, 4, 1)
	with pytest.raises(ValueError):
		with pool.lease():
			raise ValueError("render failed")
	assert pool.available == 1

#============================================

def test_handoff_keeps_buffer_out_of_pool() -> None:
	pool = PixelBufferPool(8, 4, 1)
	with pool.lease() as lease:
		buffer = lease.handoff()
	assert pool.available == 0
	assert pool.in_use == 1
	pool.release(buffer)
	assert pool.available == 1

#============================================

def test_exhausted_pool_yields_none() -> None:
	pool = PixelBufferPool(8, 4, 1)
	held = pool.acquire()
	assert held is not None
	assert pool.acquire() is None
	with pool.lease() as lease:
		assert lease is None
	pool.release(held)
	assert pool.available == 1

#============================================

def test_double_release_rejected() -> None:
	pool = PixelBufferPool(8, 4, 1)
	buffer = pool.acquire()
	pool.release(buffer)
	with pytest.raises(RuntimeError):
		pool.release(buffer)

#============================================

def test_foreign_buffer_rejected() -> None:
	pool = PixelBufferPool(8, 4, 1)
	with pytest.raises(RuntimeError):
		pool.release(PixelBuffer(8, 4))

#============================================

def test_buffer_is_read_only_outside_lock() -> None:
	buffer = PixelBuffer(4, 2)
	assert not buffer.array.flags.writeable
	with buffer.locked() as pixels:
		assert pixels.flags.writeable
		pixels[0, 0] = (1, 2, 3, 4)
	assert not buffer.array.flags.writeable
	assert tuple(buffer.array[0, 0]) == (1, 2, 3, 4)

#============================================

def test_nested_lock_rejected() -> None:
	buffer = PixelBuffer(4, 2)
	with buffer.locked():
		with pytest.raises(RenderError):
			with buffer.locked():
				pass

#============================================

def test_render_writes_argb_order() -> None:
	context = RenderContext()
	buffer = PixelBuffer(4, 2)
	image = Image.new('RGBA', (4, 2), (10, 20, 30, 200))
	context.render(image, buffer)
	assert tuple(buffer.array[1, 3]) == (200, 10, 20, 30)
	assert context.render_count == 1

#============================================

def test_render_converts_rgb_input() -> None:
	context = RenderContext()
	buffer = PixelBuffer(4, 2)
	image = Image.new('RGB', (4, 2), (10, 20, 30))
	context.render(image, buffer)
	assert tuple(buffer.array[0, 0]) == (255, 10, 20, 30)

#============================================

def test_render_size_mismatch() -> None:
	context = RenderContext()
	buffer = PixelBuffer(4, 2)
	with pytest.raises(RenderError):
		context.render(Image.new('RGBA', (2, 2)), buffer)
	assert context.render_count == 0

#============================================

def test_copy_pixels_shape_check() -> None:
	context = RenderContext()
	buffer = PixelBuffer(4, 2)
	context.copy_pixels(numpy.full((2, 4, 4), 7, dtype=numpy.uint8), buffer)
	assert int(buffer.array.sum()) == 7 * 2 * 4 * 4
	with pytest.raises(RenderError):
		context.copy_pixels(numpy.zeros((4, 2, 4), dtype=numpy.uint8), buffer)
