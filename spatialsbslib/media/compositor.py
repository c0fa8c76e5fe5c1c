#!/usr/bin/env python3

"""
Side-by-side frame compositing with PIL.

The composite is half the combined width and half the height of the two
eye images, so each eye keeps its aspect ratio in its half of the frame.
Reported image sizes are divided by the backing scale factor of the host
imaging environment before layout.
"""

# Standard Library
from fractions import Fraction

# PIP3 modules
from PIL import Image

#============================================

class CompositeFrame():
	def __init__(self, image: Image.Image, presentation_time: Fraction):
		self.image = image
		self.presentation_time = presentation_time

#============================================

class FrameCompositor():
	def __init__(self, backing_scale_factor: float = 1.0,
		resample=Image.BILINEAR):
		if backing_scale_factor <= 0:
			raise RuntimeError("backing scale factor must be positive")
		self.backing_scale_factor = backing_scale_factor
		self.resample = resample

	#============================
	def composite_size(self, left_size: tuple, right_size: tuple) -> tuple:
		divisor = 2.0 * self.backing_scale_factor
		left_half = int(left_size[0] / divisor)
		right_half = int(right_size[0] / divisor)
		image_height = int(left_size[1] / divisor)
		return (left_half + right_half, image_height)

	#============================
	def compose(self, left: Image.Image, right: Image.Image) -> Image.Image:
		if left.size != right.size:
			raise RuntimeError(f"eye sizes differ: {left.size} vs {right.size}")
		(image_width, image_height) = self.composite_size(left.size, right.size)
		if image_width <= 0 or image_height <= 0:
			raise RuntimeError("composite size is empty")
		half_width = image_width // 2
		canvas = Image.new('RGBA', (image_width, image_height), (0, 0, 0, 255))
		left_half = left.convert('RGBA').resize((half_width, image_height),
			resample=self.resample)
		canvas.paste(left_half, (0, 0))
		right_half = right.convert('RGBA').resize((image_width - half_width, image_height),
			resample=self.resample)
		canvas.paste(right_half, (half_width, 0))
		return canvas

	#============================
	def compose_sample(self, left_buffer, right_buffer,
		presentation_time: Fraction) -> CompositeFrame:
		image = self.compose(left_buffer.to_image(), right_buffer.to_image())
		return CompositeFrame(image, presentation_time)
