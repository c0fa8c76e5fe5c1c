#!/usr/bin/env python3

"""
Pull source of decoded stereo samples.

ffmpeg decodes both multi-view HEVC layers (selected with view specifiers),
stacks the left view over the right view and writes RGBA rawvideo to stdout.
A showinfo filter logs each stacked frame's pts_time to stderr, which a
daemon thread turns into a timestamp queue.
"""

# Standard Library
import collections
import queue
import re
import subprocess
import threading
from fractions import Fraction

# PIP3 modules
import numpy

# local repo modules
from spatialsbslib.core import utils
from spatialsbslib.media.demux import StereoSample
from spatialsbslib.media.demux import StereoView
from spatialsbslib.media.demux import TaggedBuffer

#============================================

PTS_TIME_RE = re.compile(r"\bpts_time:\s*(-?[0-9.]+)")

#============================================

def build_reader_command(input_file: str, left_view: str, right_view: str) -> list:
	filter_text = (
		f"[0:v:{left_view}]format=rgba[left];"
		f"[0:v:{right_view}]format=rgba[right];"
		"[left][right]vstack=inputs=2,showinfo[stacked]"
	)
	cmd = ["ffmpeg", "-hide_banner", "-nostdin", "-nostats", "-loglevel", "info"]
	cmd += ["-noautorotate"]
	cmd += ["-i", input_file]
	cmd += ["-filter_complex", filter_text]
	cmd += ["-map", "[stacked]", "-an", "-sn"]
	cmd += ["-fps_mode", "passthrough"]
	cmd += ["-f", "rawvideo", "-pix_fmt", "rgba", "pipe:1"]
	return cmd

#============================================

def parse_pts_time(line: str):
	if "showinfo" not in line:
		return None
	match = PTS_TIME_RE.search(line)
	if match is None:
		return None
	return Fraction(match.group(1))

#============================================

class StereoSampleReader():
	def __init__(self, input_file: str, eye_width: int, eye_height: int,
		settings: dict, frame_rate: Fraction = None):
		self.input_file = input_file
		self.eye_width = eye_width
		self.eye_height = eye_height
		self.frame_rate = frame_rate
		self.pts_timeout = settings["reader"]["pts_timeout_seconds"]
		self.frame_size = eye_width * eye_height * 2 * 4
		self.samples_read = 0
		self.status = "reading"
		self._timestamps = queue.Queue()
		self._stderr_lines = collections.deque(maxlen=40)
		cmd = build_reader_command(input_file, settings["reader"]["left_view"],
			settings["reader"]["right_view"])
		utils.echo_command(cmd)
		self.proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
		self._stderr_thread = threading.Thread(target=self._drain_stderr, daemon=True)
		self._stderr_thread.start()

	#============================
	def _drain_stderr(self) -> None:
		if self.proc.stderr is None:
			return
		try:
			for raw in self.proc.stderr:
				line = raw.decode("utf-8", errors="replace").strip()
				if not line:
					continue
				pts_time = parse_pts_time(line)
				if pts_time is not None:
					self._timestamps.put(pts_time)
					continue
				self._stderr_lines.append(line)
		except ValueError:
			# stderr closed by close()
			return

	#============================
	def _read_exact(self) -> bytes:
		buffer = bytearray(self.frame_size)
		view = memoryview(buffer)
		total = 0
		while total < self.frame_size:
			count = self.proc.stdout.readinto(view[total:])
			if not count:
				break
			total += count
		if total != self.frame_size:
			return None
		return buffer

	#============================
	def _next_timestamp(self) -> Fraction:
		try:
			return self._timestamps.get(timeout=self.pts_timeout)
		except queue.Empty:
			if self.frame_rate is None or self.frame_rate <= 0:
				raise RuntimeError("decoder did not report a timestamp and frame rate is unknown")
			utils.warn(f"no decoder timestamp for sample {self.samples_read}; using frame rate")
			return Fraction(self.samples_read) / self.frame_rate

	#============================
	def read_sample(self):
		"""
		Block until the next stereo sample is decoded.

		Returns:
			StereoSample, or None once the stream is exhausted.
		"""
		if self.proc.stdout is None:
			return None
		raw = self._read_exact()
		if raw is None:
			return None
		stacked = numpy.frombuffer(raw, dtype=numpy.uint8).reshape(
			(self.eye_height * 2, self.eye_width, 4))
		tagged_buffers = [
			TaggedBuffer(StereoView.LEFT_EYE, stacked[:self.eye_height]),
			TaggedBuffer(StereoView.RIGHT_EYE, stacked[self.eye_height:]),
		]
		presentation_time = self._next_timestamp()
		sample = StereoSample(tagged_buffers, presentation_time, index=self.samples_read)
		self.samples_read += 1
		return sample

	#============================
	def close(self) -> str:
		"""Stop the decoder and return its terminal status."""
		if self.proc.stdout is not None:
			self.proc.stdout.close()
		if self.proc.poll() is None:
			self.proc.terminate()
		returncode = self.proc.wait()
		self._stderr_thread.join(timeout=1.0)
		if self.proc.stderr is not None:
			self.proc.stderr.close()
		if self.status != "reading":
			return self.status
		# terminate() while reading yields a signal exit, which is not a decode failure
		if returncode == 0 or returncode < 0:
			self.status = "completed"
		else:
			tail = " | ".join(self._stderr_lines)
			self.status = f"failed: exit {returncode}: {tail}"
		return self.status
