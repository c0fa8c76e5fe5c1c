#!/usr/bin/env python3

# Standard Library
import json
from fractions import Fraction

# local repo modules
from spatialsbslib.core import utils

#============================================

def probe_media(input_file: str) -> dict:
	"""
	Probe container tags and all streams (with side data) using ffprobe.

	Args:
		input_file: Media file path.

	Returns:
		dict: Mapping with "format" and "streams" keys.
	"""
	cmd = [
		"ffprobe", "-v", "error",
		"-show_format", "-show_streams",
		"-of", "json",
		input_file,
	]
	proc = utils.run_process(cmd, capture_output=True)
	data = json.loads(proc.stdout or "{}")
	if not isinstance(data, dict):
		raise RuntimeError("invalid ffprobe output")
	streams = data.get("streams", [])
	if not isinstance(streams, list):
		raise RuntimeError("invalid ffprobe stream list")
	return {
		"format": data.get("format", {}) or {},
		"streams": streams,
	}

#============================================

def fps_fraction(value) -> Fraction:
	"""
	Convert an ffprobe frame-rate string like "30000/1001" to a Fraction.

	Returns Fraction(0) for missing or "0/0" rates.
	"""
	if value is None:
		return Fraction(0)
	text = str(value).strip()
	if text in ("", "0/0"):
		return Fraction(0)
	return utils.parse_fraction(text, label="frame rate")

#============================================

def probe_duration_seconds(input_file: str) -> float:
	"""
	Measure the video track duration of a media file.

	The first video stream's duration is preferred over the container
	duration, which can include an initial edit-list offset.
	"""
	cmd = [
		"ffprobe", "-v", "error",
		"-show_entries", "stream=codec_type,duration:format=duration",
		"-of", "json",
		input_file,
	]
	proc = utils.run_process(cmd, capture_output=True)
	data = json.loads(proc.stdout or "{}")
	for stream in data.get("streams", []):
		if stream.get("codec_type") != "video":
			continue
		duration = stream.get("duration")
		if duration not in (None, "N/A"):
			return float(duration)
	duration = data.get("format", {}).get("duration")
	if duration in (None, "N/A"):
		raise RuntimeError("ffprobe did not return duration")
	return float(duration)
