import math

import numpy as np
import pytest
from PIL import Image

from conftest import BatchClassifier, DarkRegionDetector, FixedEngine, one_hot
from ocr_lite import (
    ImageDecodeError,
    InferenceError,
    ModelNotInitializedError,
    OCRPipeline,
    OcrConfig,
    OcrIOError,
)

RECT_CORNERS = [[40, 30], [160, 30], [160, 70], [40, 70]]

DETECT_ARGS = dict(
    padding=0,
    max_side_len=0,
    box_score_thresh=0.5,
    box_thresh=0.3,
    un_clip_ratio=0.1,
    do_angle=False,
    most_angle=False,
)


def build(vocabulary, rec_outputs=None, cls_rows=None, config=None):
    if rec_outputs is None:
        rec_outputs = [one_hot([1, 1, 2, 0, 3], 5)]
    cls_engine = BatchClassifier(cls_rows or [[0.9, 0.1]])
    rec_engine = FixedEngine(*rec_outputs)
    pipeline = OCRPipeline.from_engines(
        DarkRegionDetector(0.9), cls_engine, rec_engine, vocabulary, config
    )
    return pipeline, rec_engine


def two_rectangles():
    img = np.full((160, 200, 3), 255, dtype=np.uint8)
    img[20:50, 30:170] = 0
    img[100:130, 30:170] = 0
    return img


def test_detect_before_init():
    with pytest.raises(ModelNotInitializedError):
        OCRPipeline().detect(np.zeros((32, 32, 3), dtype=np.uint8))


def test_single_rectangle_end_to_end(vocabulary, rectangle_image):
    pipeline, _ = build(vocabulary)

    result = pipeline.detect(rectangle_image, **DETECT_ARGS)

    assert len(result) == 1
    (block,) = result.text_blocks
    np.testing.assert_allclose(block.box_points, RECT_CORNERS, atol=6)
    assert block.box_score == pytest.approx(0.9, abs=0.06)
    assert (block.angle_index, block.angle_score) == (0, 0.0)
    assert block.text == "abc"
    assert block.text_score == pytest.approx(0.9)
    assert result.str_res == "abc"


def test_padding_is_removed_from_coordinates(vocabulary, rectangle_image):
    pipeline, _ = build(vocabulary)

    result = pipeline.detect(rectangle_image, **dict(DETECT_ARGS, padding=20))

    (block,) = result.text_blocks
    np.testing.assert_allclose(block.box_points, RECT_CORNERS, atol=6)


def test_max_side_len_shrinks_detector_input(vocabulary, rectangle_image):
    pipeline, _ = build(vocabulary)

    result = pipeline.detect(rectangle_image, **dict(DETECT_ARGS, max_side_len=100))

    (block,) = result.text_blocks
    np.testing.assert_allclose(block.box_points, RECT_CORNERS, atol=10)


def test_pil_image_input(vocabulary, rectangle_image):
    pipeline, _ = build(vocabulary)

    result = pipeline.detect(Image.fromarray(rectangle_image), **DETECT_ARGS)

    assert len(result) == 1


def test_blank_image_has_no_blocks(vocabulary):
    pipeline, rec_engine = build(vocabulary)

    result = pipeline.detect(np.full((64, 64, 3), 255, dtype=np.uint8), **DETECT_ARGS)

    assert result.text_blocks == []
    assert rec_engine.inputs == []


def test_upside_down_strip_with_rollback(vocabulary, rectangle_image):
    pipeline, rec_engine = build(
        vocabulary,
        rec_outputs=[one_hot([0, 0, 0], 5), one_hot([2, 0, 2], 5, peak=0.4)],
        cls_rows=[[0.2, 0.8]],
    )

    result = pipeline.detect_angle_rollback(
        rectangle_image, 0.8, **dict(DETECT_ARGS, do_angle=True)
    )

    (block,) = result.text_blocks
    assert block.angle_index == 1
    assert block.angle_score == pytest.approx(0.8)
    assert block.text == "bb"
    assert block.text_score == pytest.approx(0.4)
    assert len(rec_engine.inputs) == 2


def test_upside_down_strip_without_rollback_keeps_nan(vocabulary, rectangle_image):
    pipeline, rec_engine = build(
        vocabulary,
        rec_outputs=[one_hot([0, 0, 0], 5), one_hot([2], 5)],
        cls_rows=[[0.2, 0.8]],
    )

    result = pipeline.detect(rectangle_image, **dict(DETECT_ARGS, do_angle=True))

    (block,) = result.text_blocks
    assert block.text == ""
    assert math.isnan(block.text_score)
    assert len(rec_engine.inputs) == 1


def test_unrotated_strip_never_rolls_back(vocabulary, rectangle_image):
    pipeline, rec_engine = build(
        vocabulary,
        rec_outputs=[one_hot([0, 0, 0], 5), one_hot([2], 5)],
        cls_rows=[[0.9, 0.1]],
    )

    result = pipeline.detect(
        rectangle_image, **dict(DETECT_ARGS, do_angle=True, rollback_threshold=0.8)
    )

    assert result.text_blocks[0].text == ""
    assert len(rec_engine.inputs) == 1


@pytest.mark.parametrize("parallel", [True, False])
def test_majority_vote_across_regions(vocabulary, parallel):
    pipeline, _ = build(
        vocabulary,
        cls_rows=[[0.1, 0.9], [0.7, 0.3]],
        config=OcrConfig(parallel=parallel, max_workers=2),
    )

    result = pipeline.detect(two_rectangles(), **dict(DETECT_ARGS, do_angle=True, most_angle=True))

    assert len(result) == 2
    assert [b.angle_index for b in result] == [1, 1]
    assert sorted(b.angle_score for b in result) == pytest.approx([0.7, 0.9])


def test_sort_boxes_orders_top_to_bottom(vocabulary):
    pipeline, _ = build(vocabulary, config=OcrConfig(sort_boxes=True))

    result = pipeline.detect(two_rectangles(), **DETECT_ARGS)

    tops = [b.box_points[0][1] for b in result]
    assert tops == sorted(tops)


def test_serialized_inference(vocabulary, rectangle_image):
    pipeline, _ = build(vocabulary, config=OcrConfig(serialize_inference=True))

    assert len(pipeline.detect(rectangle_image, **DETECT_ARGS)) == 1


def test_detector_shape_mismatch(vocabulary, rectangle_image):
    pipeline = OCRPipeline.from_engines(
        FixedEngine(np.zeros((1, 1, 10, 10))),
        FixedEngine([[1.0, 0.0]]),
        FixedEngine(one_hot([1], 5)),
        vocabulary,
    )

    with pytest.raises(InferenceError):
        pipeline.detect(rectangle_image, **DETECT_ARGS)


def test_result_rendering(vocabulary, rectangle_image):
    pipeline, _ = build(vocabulary)

    rendered = str(pipeline.detect(rectangle_image, **DETECT_ARGS))

    assert rendered.startswith("OcrResult\n├─TextBlock")
    assert "TextLine[Text(abc)" in rendered
    assert rendered.endswith("└─StrRes(abc)")


class TestImageLoading:
    def test_detect_from_path(self, tmp_path, vocabulary, rectangle_image):
        path = tmp_path / "rect.png"
        Image.fromarray(rectangle_image).save(path)
        pipeline, _ = build(vocabulary)

        result = pipeline.detect_from_path(path, **DETECT_ARGS)

        assert result.str_res == "abc"

    def test_undecodable_file(self, tmp_path, vocabulary):
        path = tmp_path / "broken.png"
        path.write_bytes(b"not an image")
        pipeline, _ = build(vocabulary)

        with pytest.raises(ImageDecodeError):
            pipeline.detect_from_path(path)

    def test_missing_file(self, tmp_path, vocabulary):
        pipeline, _ = build(vocabulary)

        with pytest.raises(OcrIOError):
            pipeline.detect_from_path(tmp_path / "missing.png")


def test_missing_model_file(tmp_path, keys_file):
    with pytest.raises(OcrIOError):
        OCRPipeline().init_models(
            tmp_path / "det.onnx", tmp_path / "cls.onnx", tmp_path / "rec.onnx", keys_file
        )


def test_single_channel_image(vocabulary, rectangle_image):
    pipeline, _ = build(vocabulary)
    gray = rectangle_image[:, :, :1].copy()

    result = pipeline.detect(gray, **DETECT_ARGS)

    (block,) = result.text_blocks
    np.testing.assert_allclose(block.box_points, RECT_CORNERS, atol=6)
    assert block.text == "abc"


def test_disabled_angle_is_marked(vocabulary, rectangle_image):
    pipeline, _ = build(vocabulary)

    result = pipeline.detect(rectangle_image, **DETECT_ARGS)

    (block,) = result.text_blocks
    assert (block.angle_index, block.angle_score, block.angle_enabled) == (0, 0.0, False)
    assert "AngleDisabled[Index(0)" in str(result)


def test_enabled_angle_is_rendered(vocabulary, rectangle_image):
    pipeline, _ = build(vocabulary)

    result = pipeline.detect(rectangle_image, **dict(DETECT_ARGS, do_angle=True))

    (block,) = result.text_blocks
    assert block.angle_enabled
    assert "├──Angle[Index(0)" in str(result)


def test_memory_loading_forwards_session_settings(monkeypatch, keys_file):
    created = []

    class RecordingEngine(FixedEngine):
        def __init__(self, model, **kwargs):
            super().__init__(np.zeros((1, 1), dtype=np.float32))
            created.append((model, kwargs))

    monkeypatch.setattr("ocr_lite.pipeline.ONNXInferenceBase", RecordingEngine)

    def hook(options):
        return options

    pipeline = OCRPipeline().init_models_from_memory(
        b"det", b"cls", b"rec", keys_file,
        num_threads=2, use_gpu=True, session_options_hook=hook,
    )

    assert pipeline.initialized
    assert [model for model, _ in created] == [b"det", b"cls", b"rec"]
    for _, kwargs in created:
        assert kwargs == {"num_threads": 2, "use_gpu": True, "session_options_hook": hook}
