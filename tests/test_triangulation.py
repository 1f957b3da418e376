import math

import numpy as np
import pytest

from depthpose.depth import DepthMap
from depthpose.geometry import CameraIntrinsics, PinholeRayCaster, Ray
from depthpose.pose.types import BodyPart
from depthpose.triangulation import Triangulator, normalize_pixel, to_viewport, triangulate_joint

from conftest import FakeRayCaster, flat_depth, make_pose


def _graded_depth() -> DepthMap:
	# value encodes the cell: row * 10 + col + 1
	rows, cols = np.indices((4, 4))
	return DepthMap((rows * 10 + cols + 1).astype(np.float32))


def test_normalize_and_viewport_scaling():
	norm = normalize_pixel((150.0, 250.0), (400, 400))
	assert norm == (0.375, 0.625)
	assert to_viewport(norm, (800, 1600)) == (300.0, 1000.0)


def test_depth_uses_normalized_point_and_ray_uses_viewport_point():
	caster = FakeRayCaster(viewport_size=(800, 1600), origin=(1.0, 2.0, 3.0), direction=(0.0, 0.0, -1.0))
	wp = triangulate_joint((150.0, 250.0), (400, 400), _graded_depth(), caster, (800, 1600))

	assert caster.calls == [(300.0, 1000.0)]
	# normalized (0.375, 0.625) -> column 1, row 2 -> 22
	assert wp is not None
	assert wp.as_tuple() == pytest.approx((1.0, 2.0, 3.0 - 22.0))
	assert not wp.degraded


def test_is_deterministic():
	caster = FakeRayCaster(viewport_size=(800, 600), direction=(0.6, 0.0, -0.8))
	depth = _graded_depth()
	a = triangulate_joint((10.0, 390.0), (400, 400), depth, caster, (800, 600))
	b = triangulate_joint((10.0, 390.0), (400, 400), depth, caster, (800, 600))
	assert a == b


def test_undefined_depth_collapses_to_ray_origin():
	values = np.full((4, 4), np.nan, dtype=np.float32)
	caster = FakeRayCaster(origin=(0.25, -1.5, 4.0), direction=(0.0, 0.0, -1.0))
	wp = triangulate_joint((100.0, 100.0), (400, 400), DepthMap(values), caster, (800, 600))

	assert wp is not None
	assert wp.as_tuple() == (0.25, -1.5, 4.0)
	assert wp.degraded


def test_missing_depth_map_is_degraded_not_absent():
	caster = FakeRayCaster(origin=(0.0, 1.0, 0.0))
	wp = triangulate_joint((100.0, 100.0), (400, 400), None, caster, (800, 600))
	assert wp is not None and wp.degraded
	assert wp.as_tuple() == (0.0, 1.0, 0.0)


def test_no_ray_means_no_position():
	caster = FakeRayCaster(viewport_size=(800, 600))
	# x beyond the source image -> outside the viewport
	assert triangulate_joint((500.0, 100.0), (400, 400), flat_depth(2.0), caster, (800, 600)) is None


def test_triangulator_maps_every_tracked_joint():
	caster = FakeRayCaster(viewport_size=(800, 800))
	tri = Triangulator(
		joints=[BodyPart.NOSE, BodyPart.LEFT_WRIST, BodyPart.LEFT_HIP],
		ray_caster=caster,
		viewport_size=(800, 800),
	)
	out = tri.triangulate(make_pose(), flat_depth(1.5))

	assert set(out) == {BodyPart.NOSE, BodyPart.LEFT_WRIST, BodyPart.LEFT_HIP}
	assert out[BodyPart.LEFT_HIP] is None
	assert out[BodyPart.NOSE].as_tuple() == pytest.approx((0.0, 1.5, 0.0))
	assert out[BodyPart.LEFT_WRIST].as_tuple() == pytest.approx((0.0, 1.5, 0.0))


def test_triangulator_image_size_override():
	caster = FakeRayCaster(viewport_size=(100, 100))
	tri = Triangulator(joints=[BodyPart.NOSE], ray_caster=caster, viewport_size=(100, 100), image_size=(200, 100))
	tri.triangulate(make_pose(width=400, height=400), flat_depth(1.0))
	# nose at (200, 50) in a 200x100 image -> (1.0, 0.5) -> (100, 50)
	assert caster.calls == [(100.0, 50.0)]


def test_pinhole_center_ray_points_forward():
	intr = CameraIntrinsics(fx=500.0, fy=500.0, cx=320.0, cy=240.0, width=640, height=480)
	caster = PinholeRayCaster(intr, (1280, 960))

	ray = caster.cast_ray((640.0, 480.0))
	assert ray is not None
	np.testing.assert_allclose(ray.direction, [0.0, 0.0, -1.0], atol=1e-12)
	np.testing.assert_allclose(ray.origin, [0.0, 0.0, 0.0], atol=1e-12)


def test_pinhole_rays_are_unit_and_y_up():
	intr = CameraIntrinsics(fx=500.0, fy=500.0, cx=320.0, cy=240.0, width=640, height=480)
	caster = PinholeRayCaster(intr, (640, 480), translation=(0.0, 1.2, 0.0))

	top = caster.cast_ray((320.0, 0.0))
	assert math.isclose(float(np.linalg.norm(top.direction)), 1.0)
	assert top.direction[1] > 0.0
	np.testing.assert_allclose(top.origin, [0.0, 1.2, 0.0], atol=1e-12)
	assert caster.cast_ray((-1.0, 10.0)) is None
	assert caster.cast_ray((10.0, 481.0)) is None


def test_ray_at():
	r = Ray.of((1, 1, 1), (0, 0, -1))
	np.testing.assert_allclose(r.at(2.0), [1.0, 1.0, -1.0], atol=1e-12)
