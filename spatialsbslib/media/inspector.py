#!/usr/bin/env python3

"""
Spatial asset inspection.

Reads container metadata with ffprobe, decides whether the source carries
the spatial-format tag, and derives the first video track's geometry
(natural size plus orientation transform) used to size the output.
"""

# Standard Library
import math
from fractions import Fraction

# local repo modules
from spatialsbslib.core import utils
from spatialsbslib.core.errors import InvalidVideoError
from spatialsbslib.media import ffprobe

#============================================

class OrientationTransform():
	"""Affine transform (a, b, c, d, tx, ty) in the CoreGraphics layout."""

	def __init__(self, a: float = 1.0, b: float = 0.0, c: float = 0.0,
		d: float = 1.0, tx: float = 0.0, ty: float = 0.0):
		self.a = a
		self.b = b
		self.c = c
		self.d = d
		self.tx = tx
		self.ty = ty

	#============================
	@classmethod
	def from_rotation(cls, degrees: float) -> 'OrientationTransform':
		radians = math.radians(degrees)
		cos_value = round(math.cos(radians), 9) + 0.0
		sin_value = round(math.sin(radians), 9) + 0.0
		return cls(cos_value, sin_value, -sin_value + 0.0, cos_value)

	#============================
	@property
	def rotation_degrees(self) -> float:
		degrees = math.degrees(math.atan2(self.b, self.a))
		return round(degrees, 6) + 0.0

	#============================
	def is_identity(self) -> bool:
		return (self.a, self.b, self.c, self.d, self.tx, self.ty) == (1, 0, 0, 1, 0, 0)

	#============================
	def apply_to_size(self, width: float, height: float) -> tuple:
		return (self.a * width + self.c * height, self.b * width + self.d * height)

	#============================
	def __eq__(self, other) -> bool:
		if not isinstance(other, OrientationTransform):
			return NotImplemented
		return self.as_tuple() == other.as_tuple()

	#============================
	def as_tuple(self) -> tuple:
		return (self.a, self.b, self.c, self.d, self.tx, self.ty)

	#============================
	def __repr__(self) -> str:
		return f"OrientationTransform{self.as_tuple()}"

#============================================

class TrackGeometry():
	def __init__(self, transform: OrientationTransform, natural_width: int,
		natural_height: int):
		self.transform = transform
		self.natural_width = int(natural_width)
		self.natural_height = int(natural_height)

	#============================
	def applied_size(self) -> tuple:
		(width, height) = self.transform.apply_to_size(self.natural_width,
			self.natural_height)
		return (int(round(abs(width))), int(round(abs(height))))

	#============================
	def output_size(self) -> tuple:
		(width, height) = self.applied_size()
		return (width, height // 2)

#============================================

class SpatialVideoAsset():
	def __init__(self, path: str):
		self.path = path
		self.duration = Fraction(0)
		self.frame_rate = Fraction(0)
		self.frame_count = None
		self.tags = {}
		self.video_streams = []
		self.spatial_keys = []
		self.is_spatial = False

#============================================

def _lower_keys(tags) -> dict:
	if not isinstance(tags, dict):
		return {}
	return {str(key).lower(): value for key, value in tags.items()}

#============================================

def _rotation_from_stream(stream: dict) -> float:
	for side_data in stream.get("side_data_list", []) or []:
		if side_data.get("side_data_type") != "Display Matrix":
			continue
		if side_data.get("rotation") is not None:
			return float(side_data.get("rotation"))
	# legacy ffprobe reports a clockwise "rotate" tag instead
	rotate_tag = _lower_keys(stream.get("tags")).get("rotate")
	if rotate_tag is not None:
		return -float(rotate_tag)
	return 0.0

#============================================

def load_asset(input_file: str, settings: dict) -> SpatialVideoAsset:
	"""
	Load container metadata for a source file.

	Args:
		input_file: Source media path.
		settings: Normalized settings from config.build_settings().

	Returns:
		SpatialVideoAsset: Read-only view of the source.
	"""
	utils.ensure_file_exists(input_file)
	media_info = ffprobe.probe_media(input_file)
	asset = SpatialVideoAsset(input_file)
	asset.tags = _lower_keys(media_info["format"].get("tags"))
	asset.video_streams = [stream for stream in media_info["streams"]
		if stream.get("codec_type") == "video"]
	duration = media_info["format"].get("duration")
	if duration not in (None, "N/A"):
		asset.duration = utils.parse_fraction(str(duration), label="duration")
	asset.spatial_keys = [key.lower() for key in settings["inspect"]["spatial_keys"]]
	tag_sets = [asset.tags]
	for stream in asset.video_streams:
		tag_sets.append(_lower_keys(stream.get("tags")))
	asset.is_spatial = any(key in tags for tags in tag_sets for key in asset.spatial_keys)
	if len(asset.video_streams) > 0:
		stream = asset.video_streams[0]
		asset.frame_rate = ffprobe.fps_fraction(stream.get("avg_frame_rate"))
		if asset.frame_rate == 0:
			asset.frame_rate = ffprobe.fps_fraction(stream.get("r_frame_rate"))
		if stream.get("nb_frames") not in (None, "N/A"):
			asset.frame_count = int(stream.get("nb_frames"))
		if asset.duration == 0 and stream.get("duration") not in (None, "N/A"):
			asset.duration = utils.parse_fraction(str(stream.get("duration")), label="duration")
	return asset

#============================================

def track_geometry(asset: SpatialVideoAsset) -> TrackGeometry:
	if len(asset.video_streams) == 0:
		raise InvalidVideoError(f"no video track in {asset.path}")
	stream = asset.video_streams[0]
	width = int(stream.get("width", 0) or 0)
	height = int(stream.get("height", 0) or 0)
	if width <= 0 or height <= 0:
		raise InvalidVideoError(f"invalid video resolution in {asset.path}")
	transform = OrientationTransform.from_rotation(_rotation_from_stream(stream))
	return TrackGeometry(transform, width, height)

#============================================

def inspect_asset(asset: SpatialVideoAsset) -> tuple:
	"""
	Return (is_spatial, geometry) for a loaded asset.

	Geometry is only derived for spatial sources; a spatial source without
	a usable video track raises InvalidVideoError.
	"""
	if not asset.is_spatial:
		return (False, None)
	return (True, track_geometry(asset))
