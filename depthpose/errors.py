"""
Error taxonomy.

Only configuration problems are fatal. Per-frame conditions (estimator not
ready, no usable pose, missing depth, missing ray) are represented as values
by the components that produce them, not as exceptions.
"""


class DepthPoseError(Exception):
	"""Base class for all depthpose errors."""


class ConfigError(DepthPoseError):
	"""Invalid configuration; raised at startup and aborts initialization."""


class EstimationError(DepthPoseError):
	"""The pose estimator failed on a frame. Recoverable: the frame is dropped."""
