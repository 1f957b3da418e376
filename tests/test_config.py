import json

import pytest

from depthpose.config import AppConfig, CounterConfig, PoseConfig, load_config, parse_config
from depthpose.errors import ConfigError
from depthpose.session import build_session

from conftest import FakeRayCaster


def _write(tmp_path, obj):
	p = tmp_path / "config.json"
	p.write_text(obj if isinstance(obj, str) else json.dumps(obj), encoding="utf-8")
	return p


def test_defaults():
	cfg = AppConfig()
	assert cfg.pose.min_score == 0.2
	assert cfg.pose.model_type == "mediapipe_full"
	assert (cfg.scheduler.cadence, cfg.scheduler.counter_wrap) == (4, 60)
	assert cfg.camera.backend == "none"
	assert cfg.counters == ()


def test_missing_file_gives_defaults(tmp_path):
	assert load_config(tmp_path / "nope.json") == AppConfig()


def test_malformed_json_fails_safe(tmp_path):
	assert load_config(_write(tmp_path, "{not json")) == AppConfig()
	assert load_config(_write(tmp_path, "[1, 2]")) == AppConfig()


def test_full_config(tmp_path):
	cfg = load_config(
		_write(
			tmp_path,
			{
				"pose": {"model_type": "MediaPipe_Lite", "min_score": 0.3, "tracked_joints": ["left_hip", "right_hip", "left_hip"]},
				"scheduler": {"cadence": 2, "counter_wrap": "bogus"},
				"viewport": {"width": 640, "height": 480, "intrinsics": {"fx": 500, "cx": 320}},
				"counters": [
					{"name": "sway", "kind": "side_to_side", "joint": "left_hip", "release_joint": "right_hip", "axis": "x", "low": -0.1, "high": 0.1}
				],
				"camera": {"backend": "oakd", "rgb_size": [640, 400]},
				"logging": {"level": "debug"},
			},
		)
	)
	assert cfg.pose.model_type == "mediapipe_lite"
	assert cfg.pose.min_score == 0.3
	assert cfg.pose.tracked_joints == ("left_hip", "right_hip")
	assert (cfg.scheduler.cadence, cfg.scheduler.counter_wrap) == (2, 60)
	assert (cfg.viewport.width, cfg.viewport.intrinsics.fx, cfg.viewport.intrinsics.fy) == (640, 500.0, 1400.0)
	assert cfg.counters == (
		CounterConfig(name="sway", kind="side_to_side", joint="left_hip", axis="x", low=-0.1, high=0.1, release_joint="right_hip"),
	)
	assert cfg.camera.rgb_size == (640, 400)
	assert cfg.logging.level == "DEBUG"


@pytest.mark.parametrize(
	"raw",
	[
		{"pose": {"model_type": "movenet_thunder"}},
		{"pose": {"tracked_joints": ["nose", "tail"]}},
		{"pose": {"tracked_joints": []}},
		{"counters": [{"name": "c", "joint": "left_wrist", "low": 1.0, "high": 1.0}]},
		{"counters": [{"name": "c", "joint": "left_wrist", "low": 0.0}]},
		{"counters": [{"name": "c", "joint": "left_wrist", "axis": "w", "low": 0, "high": 1}]},
		{"counters": [{"name": "c", "kind": "pendulum", "joint": "left_wrist", "low": 0, "high": 1}]},
		{"counters": [{"name": "c", "kind": "side_to_side", "joint": "left_wrist", "low": 0, "high": 1}]},
		{"counters": [{"name": "c", "joint": "left_knee", "low": 0, "high": 1}]},
		{"counters": [{"name": "c", "joint": "nose", "low": 0, "high": 1}, {"name": "c", "joint": "nose", "low": 0, "high": 1}]},
		{"camera": {"backend": "kinect"}},
	],
)
def test_semantic_errors_are_fatal(raw):
	with pytest.raises(ConfigError):
		parse_config(raw)


def test_build_session_rejects_unknown_model():
	cfg = AppConfig(pose=PoseConfig(model_type="bogus"))
	with pytest.raises(ConfigError):
		build_session(cfg, ray_caster=FakeRayCaster())
