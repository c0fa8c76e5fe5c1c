#!/usr/bin/env python3

"""
Pooled ARGB pixel buffers and the render context that fills them.
"""

# Standard Library
import collections
import contextlib
import threading

# PIP3 modules
import numpy
from PIL import Image

# local repo modules
from spatialsbslib.core.errors import RenderError

#============================================

class PixelBuffer():
	"""
	A (height, width, 4) uint8 ARGB array.

	The memory is read-only except inside locked(), which brackets a render.
	"""

	def __init__(self, width: int, height: int):
		self.width = width
		self.height = height
		self.array = numpy.zeros((height, width, 4), dtype=numpy.uint8)
		self.array.flags.writeable = False
		self.is_locked = False

	#============================
	@contextlib.contextmanager
	def locked(self):
		if self.is_locked:
			raise RenderError("pixel buffer is already locked")
		self.is_locked = True
		self.array.flags.writeable = True
		try:
			yield self.array
		finally:
			self.array.flags.writeable = False
			self.is_locked = False

#============================================

class PixelBufferLease():
	def __init__(self, buffer: PixelBuffer):
		self.buffer = buffer
		self.handed_off = False

	#============================
	def handoff(self) -> PixelBuffer:
		self.handed_off = True
		return self.buffer

#============================================

class PixelBufferPool():
	def __init__(self, width: int, height: int, count: int):
		if width <= 0 or height <= 0:
			raise RuntimeError("pixel buffer size must be positive")
		if count < 1:
			raise RuntimeError("pixel buffer pool needs at least one buffer")
		self.width = width
		self.height = height
		self.count = count
		self._lock = threading.Lock()
		self._owned = set()
		self._free = collections.deque()
		for _ in range(count):
			buffer = PixelBuffer(width, height)
			self._owned.add(id(buffer))
			self._free.append(buffer)

	#============================
	@property
	def available(self) -> int:
		with self._lock:
			return len(self._free)

	#============================
	@property
	def in_use(self) -> int:
		return self.count - self.available

	#============================
	def acquire(self):
		"""Return a free buffer, or None when the pool is exhausted."""
		with self._lock:
			if len(self._free) == 0:
				return None
			return self._free.popleft()

	#============================
	def release(self, buffer: PixelBuffer) -> None:
		with self._lock:
			if id(buffer) not in self._owned:
				raise RuntimeError("pixel buffer does not belong to this pool")
			if any(free is buffer for free in self._free):
				raise RuntimeError("pixel buffer released twice")
			self._free.append(buffer)
		return

	#============================
	@contextlib.contextmanager
	def lease(self):
		"""
		Scoped acquisition of one buffer.

		Yields a PixelBufferLease, or None when the pool is exhausted. The
		buffer returns to the pool on exit unless lease.handoff() moved
		ownership to another party, which must then call release().
		"""
		buffer = self.acquire()
		if buffer is None:
			yield None
			return
		lease = PixelBufferLease(buffer)
		try:
			yield lease
		finally:
			if not lease.handed_off:
				self.release(buffer)

#============================================

class RenderContext():
	"""
	Renders RGBA PIL images into ARGB pixel buffers.

	One context is built per conversion and reused for every frame. A mutex
	keeps renders serialized if the context is ever shared across threads.
	"""

	def __init__(self):
		self._lock = threading.Lock()
		# RGBA source channel for each ARGB destination channel
		self._channel_order = numpy.array([3, 0, 1, 2])
		self.render_count = 0

	#============================
	def render(self, image: Image.Image, buffer: PixelBuffer) -> None:
		if image.size != (buffer.width, buffer.height):
			raise RenderError(
				f"image size {image.size[0]}x{image.size[1]} does not match "
				f"pixel buffer {buffer.width}x{buffer.height}"
			)
		if image.mode != 'RGBA':
			image = image.convert('RGBA')
		source = numpy.asarray(image)
		with self._lock:
			with buffer.locked() as target:
				numpy.take(source, self._channel_order, axis=2, out=target)
			self.render_count += 1
		return

	#============================
	def copy_pixels(self, pixels: numpy.ndarray, buffer: PixelBuffer) -> None:
		"""Copy an ARGB array that is already in output layout."""
		expected = (buffer.height, buffer.width, 4)
		if pixels.shape != expected or pixels.dtype != numpy.uint8:
			raise RenderError(f"pixel array {pixels.shape} does not match {expected}")
		with self._lock:
			with buffer.locked() as target:
				numpy.copyto(target, pixels)
			self.render_count += 1
		return
