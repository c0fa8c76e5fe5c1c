#!/usr/bin/env python3

"""
Pipeline controller for spatial to side-by-side conversion.

One conversion is one asyncio task that walks the states
Idle -> Inspecting -> Reading -> Finalizing -> Done | Failed.
Samples are processed strictly in order: pull, demux, composite, append,
report progress, then a short pacing sleep that bounds in-flight buffers.
"""

# Standard Library
import asyncio
import enum
from fractions import Fraction

# local repo modules
from spatialsbslib.core import config
from spatialsbslib.core import utils
from spatialsbslib.core.errors import ConversionCancelled
from spatialsbslib.core.errors import ConversionError
from spatialsbslib.core.errors import DecodeError
from spatialsbslib.core.errors import InvalidVideoError
from spatialsbslib.core.errors import NotSpatialVideoError
from spatialsbslib.core.errors import SinkOpenError
from spatialsbslib.media import inspector
from spatialsbslib.media.compositor import FrameCompositor
from spatialsbslib.media.demux import demux_sample
from spatialsbslib.media.reader import StereoSampleReader
from spatialsbslib.media.sink import EncodingSink

#============================================

class PipelineState(enum.Enum):
	IDLE = "idle"
	INSPECTING = "inspecting"
	READING = "reading"
	FINALIZING = "finalizing"
	DONE = "done"
	FAILED = "failed"

#============================================

class ProgressState():
	def __init__(self, duration: Fraction):
		self.duration = Fraction(duration)
		self.value = 0.0

	#============================
	def update(self, timestamp: Fraction) -> float:
		if self.duration <= 0:
			return self.value
		ratio = float(Fraction(timestamp) / self.duration)
		ratio = min(1.0, max(0.0, ratio))
		# non-uniform timestamps must never move the bar backwards
		self.value = max(self.value, ratio)
		return self.value

#============================================

class ConversionResult():
	def __init__(self, state: PipelineState, asset, stats: dict):
		self.state = state
		self.asset = asset
		self.stats = stats

#============================================

def _new_stats() -> dict:
	return {
		'samples_read': 0,
		'frames_appended': 0,
		'frames_dropped': 0,
		'incomplete_samples': 0,
		'append_retries': 0,
		'last_timestamp': None,
		'reader_status': None,
		'progress': 0.0,
	}

#============================================

class SpatialVideoConverter():
	def __init__(self, settings: dict = None, load_asset=None, reader_factory=None,
		sink_factory=None, compositor: FrameCompositor = None):
		if settings is None:
			settings = config.build_settings()
		self.settings = settings
		self.load_asset = load_asset or inspector.load_asset
		self.reader_factory = reader_factory or StereoSampleReader
		self.sink_factory = sink_factory or EncodingSink.open
		if compositor is None:
			compositor = FrameCompositor(settings['render']['backing_scale_factor'])
		self.compositor = compositor
		self.state = PipelineState.IDLE
		self.stats = _new_stats()
		self._cancel_requested = False

	#============================
	def cancel(self) -> None:
		self._cancel_requested = True

	#============================
	async def convert(self, input_file: str, output_file: str,
		progress=None) -> ConversionResult:
		"""
		Convert a spatial video into a side-by-side single-view video.

		Args:
			input_file: Spatial source path.
			output_file: Output container path.
			progress: Optional callable receiving a float in [0, 1].

		Returns:
			ConversionResult: Done state, finished asset and run stats.

		Raises:
			ConversionError: A fatal stage failure; the stage is on the error.
		"""
		self.stats = _new_stats()
		self._cancel_requested = False
		self.state = PipelineState.INSPECTING
		try:
			asset = self.load_asset(input_file, self.settings)
			(is_spatial, geometry) = inspector.inspect_asset(asset)
			if not is_spatial:
				raise NotSpatialVideoError(f"{input_file} is not a spatial video")
		except ConversionError:
			self.state = PipelineState.FAILED
			raise
		except RuntimeError as error:
			self.state = PipelineState.FAILED
			raise InvalidVideoError(f"could not inspect {input_file}", detail=str(error))
		(out_width, out_height) = geometry.output_size()
		utils.report(f"source: {geometry.natural_width}x{geometry.natural_height} per eye, "
			f"duration={utils.format_seconds(asset.duration)}, "
			f"rotation={geometry.transform.rotation_degrees:g}")
		eye_size = (geometry.natural_width, geometry.natural_height)
		composite_size = self.compositor.composite_size(eye_size, eye_size)
		try:
			# every composite must fill the writer's fixed frame size
			if composite_size != (out_width, out_height):
				raise SinkOpenError(
					f"composite size {composite_size[0]}x{composite_size[1]} does not match "
					f"output size {out_width}x{out_height}",
					detail=(f"backing_scale_factor={self.compositor.backing_scale_factor:g}, "
						f"rotation={geometry.transform.rotation_degrees:g}"))
			sink = self.sink_factory(output_file, out_width, out_height, geometry.transform,
				self.settings['pipeline']['session_start'], self.settings,
				frame_rate=asset.frame_rate)
		except ConversionError:
			self.state = PipelineState.FAILED
			raise
		reader = None
		finished = False
		try:
			reader = self.reader_factory(input_file, geometry.natural_width,
				geometry.natural_height, self.settings, frame_rate=asset.frame_rate)
			self.state = PipelineState.READING
			await self._read_loop(reader, sink, ProgressState(asset.duration), progress)
			self.stats['reader_status'] = reader.close()
			reader = None
			if self.stats['reader_status'] != "completed":
				raise DecodeError(f"decoder stopped after {self.stats['samples_read']} samples",
					detail=self.stats['reader_status'])
			self.state = PipelineState.FINALIZING
			finished_asset = await asyncio.to_thread(sink.finish)
			finished = True
		except BaseException:
			self.state = PipelineState.FAILED
			raise
		finally:
			if reader is not None:
				self.stats['reader_status'] = reader.close()
			if not finished:
				sink.abort()
		self.state = PipelineState.DONE
		utils.report(f"converted {self.stats['frames_appended']} frames "
			f"({self.stats['frames_dropped']} dropped, "
			f"{self.stats['incomplete_samples']} incomplete) -> {output_file}")
		return ConversionResult(self.state, finished_asset, self.stats)

	#============================
	async def _read_loop(self, reader, sink, progress_state: ProgressState,
		progress) -> None:
		pacing = self.settings['pipeline']['pacing_seconds']
		while True:
			if self._cancel_requested:
				raise ConversionCancelled("conversion cancelled")
			sample = await asyncio.to_thread(reader.read_sample)
			if sample is None:
				break
			self.stats['samples_read'] += 1
			pair = demux_sample(sample)
			if pair is None:
				self.stats['incomplete_samples'] += 1
				continue
			(left, right) = pair
			frame = self.compositor.compose_sample(left, right, sample.presentation_time)
			if await self._append(sink, frame):
				self.stats['frames_appended'] += 1
				self.stats['last_timestamp'] = frame.presentation_time
			else:
				self.stats['frames_dropped'] += 1
				utils.warn(f"dropped frame at {utils.format_seconds(frame.presentation_time)}")
			self.stats['progress'] = progress_state.update(frame.presentation_time)
			if progress is not None:
				progress(self.stats['progress'])
			await asyncio.sleep(pacing)
		return

	#============================
	async def _append(self, sink, frame) -> bool:
		if sink.append(frame.image, frame.presentation_time):
			return True
		pipeline = self.settings['pipeline']
		if pipeline['append_policy'] != 'retry':
			return False
		for _ in range(pipeline['retry_attempts']):
			self.stats['append_retries'] += 1
			await asyncio.sleep(pipeline['retry_backoff_seconds'])
			if sink.append(frame.image, frame.presentation_time):
				return True
		return False

#============================================

def convert_video(input_file: str, output_file: str, settings: dict = None,
	progress=None) -> ConversionResult:
	converter = SpatialVideoConverter(settings)
	return asyncio.run(converter.convert(input_file, output_file, progress=progress))
