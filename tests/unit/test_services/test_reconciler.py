"""Unit tests for the detection reconciler and its classification rule."""
import json
import math
import re

import pytest

from dentalvision.core.entities import (
    AnalysisStatus, DecodedPayload, PayloadEnvelope, RawDetection, TechnicalData,
)
from dentalvision.services.payload_decoder import CARIES_RECOMMENDATION, decode_technical_data
from dentalvision.services.reconciler import (
    CARIOUS, HEALTHY, DetectionReconciler, classify_detection, new_analysis_id, parse_fdi_number,
)


def raw(label=None, code=None, confidence=0.5, fdi="11", bbox=None) -> RawDetection:
    return RawDetection(object_id=None, class_id=code, class_name=label, confidence=confidence,
                        bbox=bbox, fdi_number=fdi)


def payload_for(technical: TechnicalData, image_ref="https://img.test/out.png",
                recommendations=None) -> DecodedPayload:
    return DecodedPayload(
        envelope=PayloadEnvelope(image_reference=image_ref, technical_data="{}"),
        technical_data=technical,
        recommendations=recommendations or [],
    )


class TestClassifyDetection:
    """The label decides whenever it is unambiguous."""

    @pytest.mark.parametrize("label", ["Cavity", "CARIES", "cavity_detected"])
    @pytest.mark.parametrize("code", [None, 0, 1, 2])
    def test_caries_labels_win_over_any_code(self, label, code):
        assert classify_detection(label, code) == CARIOUS

    @pytest.mark.parametrize("label", ["Normal tooth", "HEALTHY", "normal"])
    def test_healthy_labels_win_over_carious_code(self, label):
        assert classify_detection(label, 0) == HEALTHY

    @pytest.mark.parametrize("label", ["null", "NULL", " null "])
    def test_null_label_falls_through_to_code(self, label):
        assert classify_detection(label, 1) == HEALTHY
        assert classify_detection(label, 0) == CARIOUS

    def test_null_label_without_code_is_carious(self):
        assert classify_detection("null", None) == CARIOUS

    def test_unrecognised_label_uses_code(self):
        assert classify_detection("tooth", 1) == HEALTHY
        assert classify_detection("tooth", 0) == CARIOUS

    def test_unrecognised_label_without_code_is_carious(self):
        assert classify_detection("tooth", None) == CARIOUS

    def test_absent_label_uses_code(self):
        assert classify_detection(None, 1) == HEALTHY
        assert classify_detection(None, 0) == CARIOUS
        assert classify_detection("", 1) == HEALTHY

    def test_nothing_known_is_carious(self):
        assert classify_detection(None, None) == CARIOUS

    def test_unknown_numeric_code_is_carious(self):
        assert classify_detection(None, 5) == CARIOUS


class TestHelpers:

    @pytest.mark.parametrize("value,expected", [("16", 16), ("38", 38), (" 21 ", 21), ("16.0", 16),
                                                (None, 0), ("abc", 0)])
    def test_parse_fdi_number(self, value, expected):
        assert parse_fdi_number(value) == expected

    def test_analysis_ids_are_unique(self):
        ids = {new_analysis_id() for _ in range(50)}

        assert len(ids) == 50
        assert all(re.match(r"^AN-\d+-[0-9a-f]{6}$", i) for i in ids)


class TestDetectionReconciler:
    """Test suite for DetectionReconciler.reconcile."""

    @pytest.fixture
    def reconciler(self):
        return DetectionReconciler()

    def test_three_detection_scenario(self, reconciler, scenario_technical_data):
        technical = decode_technical_data(json.dumps(scenario_technical_data))

        analysis = reconciler.reconcile(payload_for(technical), patient_id="P-7",
                                        image_filename="scan.png", confidence_threshold=0.25)

        assert analysis.total_teeth_detected == 3
        assert analysis.total_caries_detected == 2
        assert analysis.healthy_teeth_count == 1
        assert [d.has_caries for d in analysis.detections] == [True, False, True]
        assert [d.fdi_number for d in analysis.detections] == [16, 26, 36]
        assert analysis.confidence_score == pytest.approx(0.7)
        assert analysis.synced is False
        assert analysis.status is AnalysisStatus.COMPLETED
        assert analysis.confidence_threshold == 0.25

    def test_detection_ids_follow_analysis_id(self, reconciler):
        technical = TechnicalData(detections=[raw("cavity"), raw("normal")])

        analysis = reconciler.reconcile(payload_for(technical), "P-1", analysis_id="AN-1-abcdef")

        assert [d.id for d in analysis.detections] == ["AN-1-abcdef-DET-0", "AN-1-abcdef-DET-1"]
        assert all(d.analysis_id == "AN-1-abcdef" for d in analysis.detections)

    def test_label_overrides_code(self, reconciler):
        technical = TechnicalData(detections=[raw("Cavity", code=1)])

        analysis = reconciler.reconcile(payload_for(technical), "P-1")

        assert analysis.detections[0].has_caries is True

    def test_bbox_is_converted(self, reconciler):
        technical = TechnicalData(detections=[raw("normal", bbox=(10.0, 20.0, 50.0, 80.0))])

        box = reconciler.reconcile(payload_for(technical), "P-1").detections[0].bounding_box

        assert (box.x, box.y, box.width, box.height) == (10.0, 20.0, 40.0, 60.0)

    def test_empty_detection_list_confidence_is_zero(self, reconciler):
        analysis = reconciler.reconcile(payload_for(TechnicalData(detections=[])), "P-1")

        assert analysis.confidence_score == 0.0
        assert not math.isnan(analysis.confidence_score)
        assert analysis.total_teeth_detected == 0

    @pytest.mark.parametrize("confidences", [[0.0], [1.0, 1.0], [0.2, 0.9, 0.55], [0.33] * 7])
    def test_confidence_stays_in_unit_interval(self, reconciler, confidences):
        technical = TechnicalData(detections=[raw("normal", confidence=c) for c in confidences])

        score = reconciler.reconcile(payload_for(technical), "P-1").confidence_score

        assert 0.0 <= score <= 1.0
        assert score == pytest.approx(sum(confidences) / len(confidences))

    def test_summary_counters_take_precedence(self, reconciler):
        technical = TechnicalData(detections=[raw("cavity")], total_teeth=28, cavity_count=3,
                                  average_confidence=0.91)

        analysis = reconciler.reconcile(payload_for(technical), "P-1")

        assert analysis.total_teeth_detected == 28
        assert analysis.total_caries_detected == 3
        assert analysis.confidence_score == 0.91

    def test_inconsistent_summary_is_recomputed(self, reconciler):
        technical = TechnicalData(detections=[raw("cavity"), raw("normal")], total_teeth=1, cavity_count=4)

        analysis = reconciler.reconcile(payload_for(technical), "P-1")

        assert analysis.total_teeth_detected == 2
        assert analysis.total_caries_detected == 1

    def test_caries_derived_from_summary_healthy_count(self, reconciler):
        technical = TechnicalData(detections=[raw("cavity"), raw("normal")], total_teeth=28, healthy_count=25)

        analysis = reconciler.reconcile(payload_for(technical), "P-1")

        assert analysis.total_teeth_detected == 28
        assert analysis.total_caries_detected == 3
        assert analysis.healthy_teeth_count == 25

    def test_teeth_derived_from_summary_caries_and_healthy(self, reconciler):
        technical = TechnicalData(detections=[raw("cavity")], cavity_count=2, healthy_count=20)

        analysis = reconciler.reconcile(payload_for(technical), "P-1")

        assert analysis.total_teeth_detected == 22
        assert analysis.total_caries_detected == 2

    def test_healthy_count_above_total_is_recomputed(self, reconciler):
        technical = TechnicalData(detections=[raw("cavity"), raw("normal")], total_teeth=5, healthy_count=9)

        analysis = reconciler.reconcile(payload_for(technical), "P-1")

        assert (analysis.total_teeth_detected, analysis.total_caries_detected) == (2, 1)

    def test_percentage_summary_confidence(self, reconciler):
        technical = TechnicalData(detections=[], average_confidence=82.0)

        assert reconciler.reconcile(payload_for(technical), "P-1").confidence_score == pytest.approx(0.82)

    def test_nan_summary_confidence_falls_back_to_mean(self, reconciler):
        technical = TechnicalData(detections=[raw("normal", confidence=0.6)], average_confidence=float("nan"))

        assert reconciler.reconcile(payload_for(technical), "P-1").confidence_score == pytest.approx(0.6)

    def test_image_reference_falls_back_to_file_name(self, reconciler):
        technical = TechnicalData(detections=[])

        analysis = reconciler.reconcile(payload_for(technical, image_ref=None), "P-1", image_filename="scan.png")

        assert analysis.image_url == "scan.png"

    def test_notes_use_report_recommendations(self, reconciler):
        technical = TechnicalData(detections=[raw("cavity")])

        analysis = reconciler.reconcile(payload_for(technical, recommendations=["Floss", "Brush"]), "P-1")

        assert analysis.notes == "Floss\nBrush"

    def test_notes_fall_back_to_synthesized_recommendations(self, reconciler):
        technical = TechnicalData(detections=[raw("cavity")])

        analysis = reconciler.reconcile(payload_for(technical), "P-1")

        assert CARIES_RECOMMENDATION in analysis.notes.split("\n")
        assert analysis.performed_by == "AI System"
