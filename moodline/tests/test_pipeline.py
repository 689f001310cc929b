"""
Emotion Pipeline Tests
======================

Invariantes testeadas:
1. Modo 'largest': solo la cara más grande pasa por el estabilizador
2. Sin caras: salida vacía, estado de estabilizadores intacto
3. Modo 'multi': un estabilizador por track_id, cara principal primero
   (caras sin track_id o con track_id repetido se indexan por ('index', idx))
4. reset(): vuelve a bootstrap y limpia timeline
5. StrategyFactory: registry según tracking.mode
"""
import threading

import numpy as np
import pytest

from moodline.config import MoodlineConfig
from moodline.inference import EmotionPipeline, FaceFrame, FaceObservation, ProbabilityTimeline
from moodline.inference.factories import StrategyFactory
from moodline.inference.stabilization import (
    PassThroughStabilizer,
    SmoothingConfig,
    StabilizerRegistry,
    TrackedStabilizerRegistry,
)


HAPPY = np.array([0.0, 0.0, 0.0, 0.9, 0.1, 0.0, 0.0])
SAD = np.array([0.0, 0.0, 0.0, 0.0, 0.1, 0.9, 0.0])


def _frame(frame_id, *faces):
    return FaceFrame(frame_id=frame_id, timestamp=frame_id / 15.0, faces=list(faces))


@pytest.fixture
def largest_pipeline():
    return EmotionPipeline(StabilizerRegistry(SmoothingConfig(ema_alpha=1.0)), ProbabilityTimeline(10))


@pytest.mark.unit
@pytest.mark.stabilization
class TestLargestFaceMode:

    def test_largest_face_is_tracked(self, largest_pipeline):
        small = FaceObservation(SAD, bbox=(0.0, 0.0, 0.1, 0.1))
        large = FaceObservation(HAPPY, bbox=(0.3, 0.3, 0.5, 0.5))

        predictions = largest_pipeline.process(_frame(1, small, large))

        assert len(predictions) == 1
        assert predictions[0].dominant_emotion == "happy"
        assert predictions[0].bbox == (0.3, 0.3, 0.5, 0.5)
        assert len(largest_pipeline.registry) == 1

    def test_no_face_returns_empty_and_keeps_state(self, largest_pipeline):
        """
        Invariante: frame sin caras → [] y el estabilizador no se toca.
        """
        largest_pipeline.process(_frame(1, FaceObservation(HAPPY, bbox=(0, 0, 1, 1))))
        stabilizer = largest_pipeline.registry.get(0)
        ema_before = stabilizer.ema_state

        predictions = largest_pipeline.process(_frame(2))

        assert predictions == []
        assert largest_pipeline.registry.get(0) is stabilizer
        np.testing.assert_array_equal(stabilizer.ema_state, ema_before)
        assert largest_pipeline.get_stats()['frames_without_face'] == 1

    def test_timeline_records_primary_face(self, largest_pipeline):
        for i in range(3):
            largest_pipeline.process(_frame(i, FaceObservation(HAPPY, bbox=(0, 0, 1, 1))))

        assert len(largest_pipeline.timeline) == 3

    def test_smoothing_damps_sudden_change(self):
        """
        Propiedad: con alpha bajo, un frame aislado no cambia la clase dominante.
        """
        pipeline = EmotionPipeline(StabilizerRegistry(SmoothingConfig(ema_alpha=0.15)))
        for i in range(10):
            pipeline.process(_frame(i, FaceObservation(HAPPY, bbox=(0, 0, 1, 1))))

        predictions = pipeline.process(_frame(10, FaceObservation(SAD, bbox=(0, 0, 1, 1))))

        assert predictions[0].dominant_emotion == "happy"

    def test_reset_restores_bootstrap(self, largest_pipeline):
        largest_pipeline.process(_frame(1, FaceObservation(HAPPY, bbox=(0, 0, 1, 1))))

        largest_pipeline.reset()
        predictions = largest_pipeline.process(_frame(2, FaceObservation(SAD, bbox=(0, 0, 1, 1))))

        assert predictions[0].dominant_emotion == "sad"
        assert len(largest_pipeline.timeline) == 1

    def test_reset_between_ensure_and_route_does_not_raise(self, largest_pipeline):
        """
        Invariante: un reset() concurrente nunca deja al frame loop sin slot.
        """
        registry = largest_pipeline.registry
        original_rebuild = registry._rebuild_locked
        resetter = threading.Thread(target=registry.reset)

        def rebuild_then_reset(slot_count):
            previous = original_rebuild(slot_count)
            # el reset queda bloqueado en el lock hasta que termine el fetch del slot
            resetter.start()
            return previous

        registry._rebuild_locked = rebuild_then_reset

        predictions = largest_pipeline.process(_frame(1, FaceObservation(HAPPY, bbox=(0, 0, 1, 1))))
        resetter.join(timeout=5.0)

        assert predictions[0].dominant_emotion == "happy"
        assert len(registry) == 0

    def test_update_config_reaches_stabilizer(self, largest_pipeline):
        largest_pipeline.process(_frame(1, FaceObservation(HAPPY, bbox=(0, 0, 1, 1))))
        new_config = SmoothingConfig(ema_alpha=0.5)

        largest_pipeline.update_config(new_config)

        assert largest_pipeline.registry.get(0).config is new_config


@pytest.mark.unit
@pytest.mark.stabilization
class TestMultiFaceMode:

    def test_one_stabilizer_per_track(self):
        pipeline = EmotionPipeline(TrackedStabilizerRegistry(SmoothingConfig(ema_alpha=1.0)))
        a = FaceObservation(SAD, bbox=(0, 0, 0.1, 0.1), track_id=1)
        b = FaceObservation(HAPPY, bbox=(0.5, 0.5, 0.4, 0.4), track_id=2)

        predictions = pipeline.process(_frame(1, a, b))

        assert pipeline.tracking_mode == 'multi'
        assert [p.track_id for p in predictions] == [2, 1]
        assert predictions[0].dominant_emotion == "happy"
        assert set(pipeline.registry.track_ids) == {1, 2}

    def test_missing_track_id_keyed_by_index(self):
        pipeline = EmotionPipeline(TrackedStabilizerRegistry(SmoothingConfig()))

        predictions = pipeline.process(_frame(1, FaceObservation(HAPPY, bbox=(0, 0, 1, 1))))

        assert predictions[0].track_id is None
        assert pipeline.registry.track_ids == [('index', 0)]

    def test_untracked_face_never_shares_a_tracked_stabilizer(self):
        """
        Invariante: cara sin track_id en posición 1 no se mezcla con track_id=1.
        """
        pipeline = EmotionPipeline(TrackedStabilizerRegistry(SmoothingConfig(ema_alpha=1.0)))
        tracked = FaceObservation(HAPPY, bbox=(0, 0, 0.5, 0.5), track_id=1)
        untracked = FaceObservation(SAD, bbox=(0.5, 0.5, 0.1, 0.1))

        predictions = pipeline.process(_frame(1, tracked, untracked))

        assert len(pipeline.registry) == 2
        assert set(pipeline.registry.track_ids) == {1, ('index', 1)}
        assert [p.dominant_emotion for p in predictions] == ["happy", "sad"]
        assert pipeline.registry.get(1).get_stats()['frames_processed'] == 1

    def test_duplicate_track_id_first_face_keeps_track(self):
        pipeline = EmotionPipeline(TrackedStabilizerRegistry(SmoothingConfig(ema_alpha=1.0)))
        first = FaceObservation(HAPPY, bbox=(0, 0, 0.5, 0.5), track_id=3)
        second = FaceObservation(SAD, bbox=(0.5, 0.5, 0.1, 0.1), track_id=3)

        predictions = pipeline.process(_frame(1, first, second))

        assert set(pipeline.registry.track_ids) == {3, ('index', 1)}
        assert [p.track_id for p in predictions] == [3, None]
        assert pipeline.registry.get(3).get_stats()['frames_processed'] == 1
        assert pipeline.get_stats()['frames_processed'] == 2

    def test_lost_track_evicted(self):
        registry = TrackedStabilizerRegistry(SmoothingConfig(), max_missed_frames=1)
        pipeline = EmotionPipeline(registry)
        pipeline.process(_frame(1, FaceObservation(HAPPY, bbox=(0, 0, 1, 1), track_id=9)))

        pipeline.process(_frame(2))
        pipeline.process(_frame(3))

        assert registry.track_ids == []


@pytest.mark.unit
@pytest.mark.config
class TestStrategyFactory:

    def test_largest_mode_builds_slot_registry(self):
        pipeline = StrategyFactory.create_pipeline(MoodlineConfig())

        assert isinstance(pipeline.registry, StabilizerRegistry)
        assert pipeline.timeline.history_limit == 75

    def test_multi_mode_builds_tracked_registry(self):
        config = MoodlineConfig(tracking={"mode": "multi", "max_missed_frames": 4})

        registry = StrategyFactory.create_registry(config)

        assert isinstance(registry, TrackedStabilizerRegistry)
        assert registry.max_missed_frames == 4

    def test_none_mode_uses_pass_through(self):
        config = MoodlineConfig(smoothing={"mode": "none"})
        registry = StrategyFactory.create_registry(config)

        registry.ensure(1)

        assert isinstance(registry.get(0), PassThroughStabilizer)
