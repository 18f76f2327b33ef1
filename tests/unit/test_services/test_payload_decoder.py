"""Unit tests for the two-pass payload decoder.

Malformed payloads must surface as DecodeError naming the bad element, never
as an empty (all-healthy looking) detection list.
"""
import json

import pytest

from dentalvision.core.exceptions import DecodeError
from dentalvision.services.payload_decoder import (
    BASE_RECOMMENDATIONS, CARIES_RECOMMENDATION, HEALTHY_RECOMMENDATION, PayloadDecoder,
    decode_technical_data, extract_recommendations, synthesize_recommendations,
)

from conftest import SERVICE_URL


def event_data(*items) -> str:
    return json.dumps(list(items))


class TestEnvelope:
    """First pass: event data -> PayloadEnvelope."""

    def test_object_wrapped_array(self, decoder):
        envelope = decoder.decode_envelope(json.dumps({"data": ["https://cdn.test/a.png", "{}", "report"]}))

        assert envelope.image_reference == "https://cdn.test/a.png"
        assert envelope.technical_data == "{}"
        assert envelope.report == "report"

    def test_bare_array(self, decoder):
        envelope = decoder.decode_envelope(event_data("data:image/png;base64,AAAA", "{}"))

        assert envelope.image_reference == "data:image/png;base64,AAAA"
        assert envelope.report is None

    def test_relative_path_gets_file_prefix(self, decoder):
        envelope = decoder.decode_envelope(event_data("/tmp/gradio/out.png", "{}"))

        assert envelope.image_reference == f"{SERVICE_URL}/file=/tmp/gradio/out.png"

    def test_object_reference_prefers_url_then_path(self, decoder):
        with_url = decoder.decode_envelope(event_data({"url": "https://x.test/1.png", "path": "p.png"}, "{}"))
        with_path = decoder.decode_envelope(event_data({"path": "tmp/p.png", "url": None}, "{}"))

        assert with_url.image_reference == "https://x.test/1.png"
        assert with_path.image_reference == f"{SERVICE_URL}/file=tmp/p.png"

    def test_null_image_reference(self, decoder):
        assert decoder.decode_envelope(event_data(None, "{}")).image_reference is None

    def test_gallery_list_uses_first_image(self, decoder, scenario_technical_data):
        payload = decoder.decode(event_data([{"path": "a.png"}, {"path": "b.png"}],
                                            json.dumps(scenario_technical_data)))

        assert payload.envelope.image_reference == f"{SERVICE_URL}/file=a.png"
        assert len(payload.technical_data.detections) == 3

    def test_empty_gallery_list_has_no_image(self, decoder):
        assert decoder.decode_envelope(event_data([], "{}")).image_reference is None

    def test_unsupported_image_reference_is_ignored(self, decoder, caplog):
        caplog.set_level("WARNING", logger="dentalvision.services.payload_decoder")

        envelope = decoder.decode_envelope(event_data(42, '{"detections": []}'))

        assert envelope.image_reference is None
        assert "unsupported type int" in caplog.text

    def test_single_element_is_decode_error(self, decoder):
        with pytest.raises(DecodeError) as exc_info:
            decoder.decode_envelope(event_data("img.png"))

        assert exc_info.value.element == "data"
        assert "at least 2" in exc_info.value.detail

    def test_null_technical_data_is_decode_error(self, decoder):
        with pytest.raises(DecodeError) as exc_info:
            decoder.decode_envelope(event_data("img.png", None))

        assert exc_info.value.element == "data[1]"

    def test_numeric_technical_data_is_decode_error(self, decoder):
        with pytest.raises(DecodeError) as exc_info:
            decoder.decode_envelope(event_data("img.png", 42))

        assert exc_info.value.element == "data[1]"

    @pytest.mark.parametrize("raw", ["not json", '{"result": []}', '"a string"'])
    def test_bad_outer_document(self, decoder, raw):
        with pytest.raises(DecodeError) as exc_info:
            decoder.decode_envelope(raw)

        assert exc_info.value.element == "data"

    def test_already_decoded_technical_object_is_accepted(self, decoder):
        envelope = decoder.decode_envelope(event_data("img.png", {"detections": []}))

        assert json.loads(envelope.technical_data) == {"detections": []}


class TestTechnicalData:
    """Second pass: technical-data string -> TechnicalData."""

    def test_double_encoded_document(self, scenario_technical_data):
        technical = decode_technical_data(json.dumps(scenario_technical_data))

        assert len(technical.detections) == 3
        first = technical.detections[0]
        assert first.class_name == "cavity"
        assert first.class_id is None
        assert first.confidence == 0.9
        assert first.fdi_number == "16"
        assert technical.detections[2].class_id == 0
        assert technical.total_teeth is None

    def test_loose_types_are_coerced(self):
        technical = decode_technical_data(json.dumps({"detections": [
            {"class_id": "1", "confidence": "0.75", "fdi_number": 21, "bbox": ["1", "2", "3", "4"],
             "object_id": "7"},
        ]}))
        detection = technical.detections[0]

        assert detection.class_id == 1
        assert detection.confidence == 0.75
        assert detection.fdi_number == "21"
        assert detection.bbox == (1.0, 2.0, 3.0, 4.0)
        assert detection.object_id == 7

    def test_confidence_is_clamped(self):
        technical = decode_technical_data(json.dumps({"detections": [{"confidence": 1.7}, {"confidence": -0.2}]}))

        assert [d.confidence for d in technical.detections] == [1.0, 0.0]

    def test_nested_summary_with_aliases(self):
        technical = decode_technical_data(json.dumps({
            "detections": [],
            "summary": {"total_detections": 5, "caries_detected": "2", "healthy_teeth": 3,
                        "average_confidence": 0.66},
        }))

        assert technical.total_teeth == 5
        assert technical.cavity_count == 2
        assert technical.healthy_count == 3
        assert technical.average_confidence == 0.66

    def test_top_level_summary_fields(self):
        technical = decode_technical_data(json.dumps({
            "detections": [], "total_teeth_detected": 4, "cavity_count": 1,
        }))

        assert technical.total_teeth == 4
        assert technical.cavity_count == 1

    def test_empty_detection_list_is_legal(self):
        assert decode_technical_data('{"detections": []}').detections == []

    def test_missing_detections_field(self):
        with pytest.raises(DecodeError) as exc_info:
            decode_technical_data('{"summary": {}}')

        assert exc_info.value.element == "detections"

    def test_detections_not_a_list(self):
        with pytest.raises(DecodeError) as exc_info:
            decode_technical_data('{"detections": "none"}')

        assert exc_info.value.element == "detections"

    def test_invalid_inner_json(self):
        with pytest.raises(DecodeError) as exc_info:
            decode_technical_data("{detections: [")

        assert exc_info.value.element == "data[1]"

    def test_bad_field_names_its_location(self):
        document = json.dumps({"detections": [{"confidence": 0.5}, {"confidence": 0.5},
                                              {"confidence": "high"}]})

        with pytest.raises(DecodeError) as exc_info:
            decode_technical_data(document)

        assert exc_info.value.element == "detections[2].confidence"

    def test_missing_confidence(self):
        with pytest.raises(DecodeError) as exc_info:
            decode_technical_data('{"detections": [{"class_name": "cavity"}]}')

        assert exc_info.value.element == "detections[0].confidence"

    def test_bad_bbox(self):
        with pytest.raises(DecodeError) as exc_info:
            decode_technical_data('{"detections": [{"confidence": 0.5, "bbox": [1, 2, 3]}]}')

        assert exc_info.value.element == "detections[0].bbox"


class TestRecommendations:

    def test_bullets_are_extracted(self):
        report = (
            "## Findings\n"
            "Two lesions found.\n"
            "- Schedule a restoration for tooth 16\n"
            "* **Reduce sugar intake**\n"
            "1. Fluoride varnish every 6 months\n"
        )

        assert extract_recommendations(report) == [
            "Schedule a restoration for tooth 16",
            "Reduce sugar intake",
            "Fluoride varnish every 6 months",
        ]

    def test_no_bullets(self):
        assert extract_recommendations("All clear.") == []
        assert extract_recommendations(None) == []

    def test_synthesized_depend_on_cavities(self):
        assert synthesize_recommendations(2) == BASE_RECOMMENDATIONS + [CARIES_RECOMMENDATION]
        assert synthesize_recommendations(0) == BASE_RECOMMENDATIONS + [HEALTHY_RECOMMENDATION]

    def test_full_decode_carries_report_bullets(self, decoder):
        payload = decoder.decode(event_data("img.png", '{"detections": []}', "- Floss daily"))

        assert payload.recommendations == ["Floss daily"]
        assert payload.technical_data.detections == []
