import pytest

from depthpose.errors import ConfigError
from depthpose.pose.types import TimingInfo
from depthpose.scheduler import Admission, Frame, FrameScheduler

from conftest import FakeEstimator, depth_frame, make_pose


def _submit_all(s, frames, settle=True):
	results = []
	for f in frames:
		results.append(s.submit(f))
		if settle:
			assert s.wait_idle(timeout=5.0)
	return results


def test_only_every_fourth_depth_frame_is_submitted(scheduler, estimator):
	results = _submit_all(scheduler, [depth_frame(i) for i in range(16)])

	submitted = [i for i, r in enumerate(results) if r is Admission.SUBMITTED]
	assert submitted == [0, 4, 8, 12]
	assert all(r is Admission.SKIPPED_CADENCE for i, r in enumerate(results) if i % 4 != 0)
	assert estimator.calls == [0, 4, 8, 12]


def test_frames_without_depth_do_not_advance_the_cadence(scheduler, estimator):
	frames = []
	for i in range(8):
		frames.append(Frame(image=f"nodepth-{i}", depth_map=None, seq=100 + i))
		frames.append(depth_frame(i))
	results = _submit_all(scheduler, frames)

	assert results.count(Admission.NO_DEPTH) == 8
	assert estimator.calls == [0, 4]
	assert scheduler.get_status()["no_depth"] == 8


def test_busy_worker_drops_eligible_frame_instead_of_queueing():
	est = FakeEstimator(pose=make_pose(), block=True)
	s = FrameScheduler(estimator=est)
	s.start()
	try:
		assert s.submit(depth_frame(0)) is Admission.SUBMITTED
		assert est.started.wait(5.0)

		results = {i: s.submit(depth_frame(i)) for i in range(1, 8)}
		assert results[4] is Admission.DROPPED_BUSY
		assert s.is_busy()

		est.release.set()
		assert s.wait_idle(timeout=5.0)
		assert s.submit(depth_frame(8)) is Admission.SUBMITTED
		assert s.wait_idle(timeout=5.0)
	finally:
		s.stop()

	assert est.calls == [0, 8]
	assert est.max_active == 1
	st = s.get_status()
	assert st["dropped_busy"] == 1
	assert st["submitted"] == 2


def test_counter_wraps():
	est = FakeEstimator(pose=make_pose())
	s = FrameScheduler(estimator=est, cadence=7, counter_wrap=10)
	s.start()
	try:
		_submit_all(s, [depth_frame(i) for i in range(21)])
	finally:
		s.stop()
	# counter values: 0..9, 0..9, 0 -> eligible at 0 and 7 in each lap
	assert est.calls == [0, 7, 10, 17, 20]


def test_no_estimator_means_not_ready():
	s = FrameScheduler(estimator=None)
	s.start()
	try:
		assert s.submit(depth_frame(0)) is Admission.NOT_READY
		assert s.submit(depth_frame(1)) is Admission.SKIPPED_CADENCE
		assert s.get_status()["dropped_not_ready"] == 1
		assert s.next_outcome(0.0) is None
	finally:
		s.stop()


def test_estimation_error_drops_frame_and_keeps_worker_alive():
	est = FakeEstimator(pose=make_pose(), fail_on=[0])
	s = FrameScheduler(estimator=est)
	s.start()
	try:
		_submit_all(s, [depth_frame(i) for i in range(5)])
		first = s.next_outcome(1.0)
		assert first is not None
		assert first.frame.seq == 4
		assert s.next_outcome(0.0) is None
		st = s.get_status()
		assert st["estimation_errors"] == 1
		assert st["completed"] == 1
		assert "boom" in st["last_error"]
	finally:
		s.stop()


def test_outcomes_keep_production_order_and_own_depth(scheduler):
	frames = [depth_frame(i, value=1.0 + i) for i in range(12)]
	_submit_all(scheduler, frames)

	outcomes = []
	while True:
		o = scheduler.next_outcome(0.5)
		if o is None:
			break
		outcomes.append(o)

	assert [o.frame.seq for o in outcomes] == [0, 4, 8]
	for o in outcomes:
		assert o.frame.depth_map is frames[o.frame.seq].depth_map
		assert isinstance(o.timing, TimingInfo)


def test_set_estimator_swaps_on_worker(scheduler, estimator):
	replacement = FakeEstimator(pose=make_pose(score=0.5))
	scheduler.set_estimator(lambda: replacement, timeout=5.0)

	assert estimator.closed
	assert scheduler.is_ready()
	_submit_all(scheduler, [depth_frame(0)])
	assert replacement.calls == [0]
	assert scheduler.get_status()["estimator"] == "fake"


def test_set_estimator_factory_error_propagates(scheduler):
	def bad_factory():
		raise ConfigError("unknown pose model type: 'nope'")

	with pytest.raises(ConfigError):
		scheduler.set_estimator(bad_factory, timeout=5.0)
	assert not scheduler.is_ready()
	assert scheduler.submit(depth_frame(0)) is Admission.NOT_READY


def test_invalid_cadence():
	with pytest.raises(ValueError):
		FrameScheduler(cadence=0)
	with pytest.raises(ValueError):
		FrameScheduler(cadence=8, counter_wrap=4)


def test_stop_leaves_close_to_the_worker_while_inference_runs():
	est = FakeEstimator(pose=make_pose(), block=True)
	s = FrameScheduler(estimator=est)
	s.start()
	assert s.submit(depth_frame(0)) is Admission.SUBMITTED
	assert est.started.wait(5.0)

	s.stop(timeout=0.1)
	assert est._active == 1
	assert not est.closed

	est.release.set()
	assert est.close_called.wait(5.0)
	assert est._active == 0


def test_frame_submitted_right_before_stop_still_runs():
	est = FakeEstimator(pose=make_pose())
	s = FrameScheduler(estimator=est)
	s.start()
	assert s.submit(depth_frame(0)) is Admission.SUBMITTED
	s.stop()

	assert est.calls == [0]
	assert s.wait_idle(timeout=0)
	assert est.closed


def test_status_ready_agrees_with_admission_after_stop(estimator):
	s = FrameScheduler(estimator=estimator)
	s.start()
	assert s.get_status()["ready"] is True
	s.stop()

	assert not s.is_ready()
	assert s.get_status()["ready"] is False
	assert s.submit(depth_frame(0)) is Admission.NOT_READY
