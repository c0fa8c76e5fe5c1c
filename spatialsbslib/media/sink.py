#!/usr/bin/env python3

"""
Encoding sink: pooled ARGB buffers in, an encoded single-view container out.

Frames are rendered into buffers drawn from a fixed pool and queued for a
writer thread that encodes and muxes them with PyAV. The queue bound is the
back-pressure signal: when it is full the sink reports that it is not ready
and append() returns False without touching the pool.
"""

# Standard Library
import os
import queue
import threading
from fractions import Fraction

# PIP3 modules
import av
import numpy
from PIL import Image

# local repo modules
from spatialsbslib.core import utils
from spatialsbslib.core.errors import FinalizeError
from spatialsbslib.core.errors import RenderError
from spatialsbslib.core.errors import SinkOpenError
from spatialsbslib.media import ffprobe
from spatialsbslib.media.inspector import OrientationTransform
from spatialsbslib.media.pixel_pool import PixelBufferPool
from spatialsbslib.media.pixel_pool import RenderContext

#============================================

STATUS_UNKNOWN = "unknown"
STATUS_WRITING = "writing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"

X264_LIKE_CODECS = ("h264", "libx264", "hevc", "libx265")

#============================================

class FinishedAsset():
	def __init__(self, path: str, duration_seconds: float, frame_count: int):
		self.path = path
		self.duration_seconds = duration_seconds
		self.frame_count = frame_count

	#============================
	def __repr__(self) -> str:
		return (f"FinishedAsset(path={self.path!r}, "
			f"duration_seconds={self.duration_seconds:.3f}, frame_count={self.frame_count})")

#============================================

class EncodingSink():
	def __init__(self, output_file: str, width: int, height: int,
		orientation: OrientationTransform, session_start: Fraction, settings: dict,
		frame_rate: Fraction = None, render_context: RenderContext = None):
		self.output_file = output_file
		self.width = width
		self.height = height
		self.orientation = orientation or OrientationTransform()
		self.session_start = session_start
		self.settings = settings
		self.frame_rate = frame_rate
		self.render_context = render_context or RenderContext()
		self.time_base = settings["output"]["time_base"]
		self.status = STATUS_UNKNOWN
		self.error = None
		self.last_presentation_time = None
		self.frames_written = 0
		self.pool = None
		self.writer_path = output_file
		self._container = None
		self._stream = None
		self._queue = None
		self._thread = None
		self._input_finished = False
		self._finishing = False

	#============================
	@classmethod
	def open(cls, output_file: str, width: int, height: int,
		orientation: OrientationTransform, session_start: Fraction, settings: dict,
		frame_rate: Fraction = None, render_context: RenderContext = None) -> 'EncodingSink':
		"""
		Create the writer, its video input and buffer pool, and start a session.

		Raises:
			SinkOpenError: The output target or writer could not be set up.
		"""
		sink = cls(output_file, width, height, orientation, session_start, settings,
			frame_rate=frame_rate, render_context=render_context)
		sink._start()
		return sink

	#============================
	def _start(self) -> None:
		output = self.settings["output"]
		if self.width <= 0 or self.height <= 0:
			raise SinkOpenError(f"invalid output size {self.width}x{self.height}")
		if output["pixel_format"] == "yuv420p" and (self.width % 2 or self.height % 2):
			raise SinkOpenError(f"output size {self.width}x{self.height} must be even for yuv420p")
		if self.session_start is None or Fraction(self.session_start) < 0:
			raise SinkOpenError("invalid session start time")
		output_dir = os.path.dirname(os.path.abspath(self.output_file))
		if not os.path.isdir(output_dir):
			raise SinkOpenError(f"output directory does not exist: {output_dir}")
		if os.path.exists(self.output_file) and not output["overwrite"]:
			raise SinkOpenError(f"output file exists: {self.output_file}")
		# the previous output survives until finish() moves the new one into place
		(base, ext) = os.path.splitext(self.output_file)
		self.writer_path = f"{base}.partial{ext or '.mp4'}"
		try:
			self._container = av.open(self.writer_path, mode='w', format=output["container"])
		except (OSError, ValueError, av.error.FFmpegError) as error:
			raise SinkOpenError("could not create output target", detail=str(error))
		try:
			self._stream = self._add_video_stream()
		except (ValueError, av.error.FFmpegError) as error:
			self._container.close()
			self._remove_writer_file()
			raise SinkOpenError("writer cannot accept a video input with these settings",
				detail=str(error))
		max_pending = self.settings["pipeline"]["max_pending_frames"]
		# one extra buffer covers the frame the writer thread is encoding
		self.pool = PixelBufferPool(self.width, self.height, max_pending + 1)
		self._queue = queue.Queue(maxsize=max_pending)
		self.status = STATUS_WRITING
		self._thread = threading.Thread(target=self._writer_loop, daemon=True)
		self._thread.start()
		utils.report(f"writer open: {self.width}x{self.height} {output['codec']} -> {self.output_file}")
		return

	#============================
	def _add_video_stream(self):
		output = self.settings["output"]
		rate = self.frame_rate
		if rate is None or rate <= 0:
			rate = Fraction(30, 1)
		options = {}
		if output["codec"] in X264_LIKE_CODECS:
			options = {"crf": str(output["crf"]), "preset": output["preset"]}
		stream = self._container.add_stream(output["codec"], rate=rate, options=options)
		stream.width = self.width
		stream.height = self.height
		stream.pix_fmt = output["pixel_format"]
		stream.time_base = self.time_base
		stream.codec_context.time_base = self.time_base
		return stream

	#============================
	def _needs_rotation(self) -> bool:
		return abs(self.orientation.rotation_degrees) > 1e-6

	#============================
	@property
	def is_ready_for_more_media_data(self) -> bool:
		if self.status != STATUS_WRITING or self._input_finished:
			return False
		if self.error is not None:
			return False
		return not self._queue.full()

	#============================
	def append(self, image: Image.Image, presentation_time: Fraction) -> bool:
		"""
		Render an image into a pooled buffer and queue it for encoding.

		Returns False, without allocating a buffer, when the writer is not
		ready. Pool exhaustion, a size mismatch or a timestamp that does not
		move forward are also reported as False.
		"""
		if not self.is_ready_for_more_media_data:
			return False
		return self._append_with(lambda buffer: self.render_context.render(image, buffer),
			presentation_time)

	#============================
	def append_pixel_buffer(self, pixels: numpy.ndarray, presentation_time: Fraction) -> bool:
		if not self.is_ready_for_more_media_data:
			return False
		return self._append_with(lambda buffer: self.render_context.copy_pixels(pixels, buffer),
			presentation_time)

	#============================
	def _append_with(self, fill, presentation_time: Fraction) -> bool:
		if self.last_presentation_time is not None and presentation_time <= self.last_presentation_time:
			utils.warn(f"rejected non-increasing timestamp {utils.format_seconds(presentation_time)}")
			return False
		with self.pool.lease() as lease:
			if lease is None:
				utils.warn("pixel buffer pool exhausted")
				return False
			try:
				fill(lease.buffer)
			except RenderError as error:
				utils.warn(f"render failed: {error}")
				return False
			try:
				self._queue.put_nowait((lease.buffer, presentation_time))
			except queue.Full:
				return False
			lease.handoff()
		self.last_presentation_time = presentation_time
		return True

	#============================
	def _writer_loop(self) -> None:
		while True:
			item = self._queue.get()
			if item is None:
				break
			(buffer, presentation_time) = item
			try:
				if self.error is None and self.status == STATUS_WRITING:
					self._encode(buffer, presentation_time)
			except (ValueError, RenderError, av.error.FFmpegError) as error:
				self.error = error
			finally:
				self.pool.release(buffer)
		return

	#============================
	def _encode(self, buffer, presentation_time: Fraction) -> None:
		with buffer.locked() as pixels:
			frame = av.VideoFrame.from_ndarray(pixels, format='argb')
		frame.pts = utils.seconds_to_ticks(presentation_time + self.session_start, self.time_base)
		frame.time_base = self.time_base
		for packet in self._stream.encode(frame):
			self._container.mux(packet)
		self.frames_written += 1
		return

	#============================
	def finish(self) -> FinishedAsset:
		"""
		Mark the input finished, wait for the writer, and verify the output.

		Raises:
			FinalizeError: The writer did not reach the completed status.
		"""
		if self.status != STATUS_WRITING:
			raise FinalizeError(f"cannot finish a sink in status {self.status}")
		self._input_finished = True
		self._finishing = True
		self._queue.put(None)
		self._thread.join()
		if self.error is None:
			try:
				for packet in self._stream.encode():
					self._container.mux(packet)
			except (ValueError, av.error.FFmpegError) as error:
				self.error = error
		try:
			self._container.close()
		except (OSError, av.error.FFmpegError) as error:
			if self.error is None:
				self.error = error
		if self.error is None and self.frames_written == 0:
			self.error = RuntimeError("no frames were accepted")
		if self.error is not None:
			self.status = STATUS_FAILED
			self._remove_writer_file()
			raise FinalizeError("writer did not complete", detail=str(self.error))
		self.status = STATUS_COMPLETED
		if self._needs_rotation():
			self._apply_orientation()
		else:
			os.replace(self.writer_path, self.output_file)
		try:
			duration = ffprobe.probe_duration_seconds(self.output_file)
		except RuntimeError as error:
			raise FinalizeError("could not measure output duration", detail=str(error))
		min_duration = self.settings["output"]["min_duration_seconds"]
		if duration < min_duration:
			raise FinalizeError(f"output is shorter than {min_duration:.3f}s",
				detail=f"measured {duration:.3f}s")
		utils.report(f"writer finished: {self.frames_written} frames, duration={duration:.3f}s")
		return FinishedAsset(self.output_file, duration, self.frames_written)

	#============================
	def _apply_orientation(self) -> None:
		rotation = self.orientation.rotation_degrees
		cmd = ["ffmpeg", "-y", "-v", "error", "-nostdin"]
		cmd += ["-display_rotation:v:0", f"{rotation:g}"]
		cmd += ["-i", self.writer_path]
		cmd += ["-map", "0", "-c", "copy", self.output_file]
		try:
			utils.run_process(cmd, capture_output=True)
		except RuntimeError as error:
			raise FinalizeError("could not apply output orientation", detail=str(error))
		finally:
			self._remove_writer_file()
		return

	#============================
	def _remove_writer_file(self) -> None:
		if os.path.exists(self.writer_path):
			os.remove(self.writer_path)
		return

	#============================
	def abort(self) -> None:
		"""Tear the writer down after a failed or cancelled run."""
		if self.status != STATUS_WRITING:
			return
		if self._finishing:
			# finish() owns the writer thread and container from here on
			utils.warn("abort requested while the writer is finishing")
			return
		self.status = STATUS_CANCELLED
		self._input_finished = True
		while True:
			try:
				item = self._queue.get_nowait()
			except queue.Empty:
				break
			if item is not None:
				self.pool.release(item[0])
		self._queue.put(None)
		self._thread.join()
		try:
			self._container.close()
		except (OSError, av.error.FFmpegError) as error:
			utils.warn(f"closing cancelled writer failed: {error}")
		self._remove_writer_file()
		return
