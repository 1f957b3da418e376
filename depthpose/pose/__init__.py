"""
Pose estimation utilities.

This package defines a model-agnostic PoseResult interface and estimator adapters
(e.g., MediaPipe Pose) so the tracking pipeline never depends on one model stack.
"""
