"""Tests for the CLIP embedder against a tiny randomly initialised checkpoint.

The checkpoint keeps the ViT-B/32 layout (vision and text towers plus
projections) but with toy sizes, so the whole module runs on CPU in seconds.
"""
import io

import numpy as np
import pytest
import torch
from PIL import Image
from safetensors.torch import save_file
from tokenizers import Tokenizer
from tokenizers.models import WordLevel
from tokenizers.pre_tokenizers import Whitespace
from tokenizers.processors import TemplateProcessing
from transformers import CLIPConfig, CLIPModel

from core.embedders.clip_embedder import ClipEmbedder, resolve_device
from core.errors import ArtifactError, DecodeError, InferenceError, ValidationError

PROJECTION_DIM = 16
MAX_POSITIONS = 16
IMAGE_SIZE = 32
WORDS = ["a", "photo", "of", "the", "cat", "dog", "red", "blue", "car", "tree", "house", "on", "beach"]


def _build_vocab():
    vocab = {"<|unk|>": 0}
    for word in WORDS:
        vocab[word] = len(vocab)
    vocab["<|startoftext|>"] = len(vocab)
    # The text tower pools at the end-of-text token; keeping it the highest id
    # also satisfies the argmax pooling of older checkpoints.
    vocab["<|endoftext|>"] = len(vocab)
    return vocab


def _save_tokenizer(path, vocab, with_pad=True):
    tokenizer = Tokenizer(WordLevel(vocab, unk_token="<|unk|>"))
    tokenizer.pre_tokenizer = Whitespace()
    if with_pad:
        tokenizer.post_processor = TemplateProcessing(
            single="<|startoftext|> $A <|endoftext|>",
            special_tokens=[
                ("<|startoftext|>", vocab["<|startoftext|>"]),
                ("<|endoftext|>", vocab["<|endoftext|>"]),
            ],
        )
    tokenizer.save(str(path))
    return path


def _tiny_config(vocab):
    return CLIPConfig(
        text_config={
            "vocab_size": len(vocab),
            "bos_token_id": vocab["<|startoftext|>"],
            "eos_token_id": vocab["<|endoftext|>"],
            "pad_token_id": vocab["<|endoftext|>"],
            "hidden_size": 32,
            "intermediate_size": 37,
            "num_hidden_layers": 2,
            "num_attention_heads": 4,
            "max_position_embeddings": MAX_POSITIONS,
        },
        vision_config={
            "hidden_size": 32,
            "intermediate_size": 37,
            "num_hidden_layers": 2,
            "num_attention_heads": 4,
            "image_size": IMAGE_SIZE,
            "patch_size": 8,
        },
        projection_dim=PROJECTION_DIM,
    )


@pytest.fixture(scope="module")
def artifacts(tmp_path_factory):
    """Write a safetensors checkpoint, a pretrained directory and a tokenizer."""

    root = tmp_path_factory.mktemp("clip")
    vocab = _build_vocab()
    torch.manual_seed(0)
    config = _tiny_config(vocab)
    model = CLIPModel(config)

    weights_dir = root / "safetensors"
    weights_dir.mkdir()
    state_dict = {key: value.contiguous() for key, value in model.state_dict().items()}
    save_file(state_dict, str(weights_dir / "model.safetensors"))
    config.to_json_file(str(weights_dir / "config.json"))

    pretrained_dir = root / "pretrained"
    model.save_pretrained(str(pretrained_dir))

    tokenizer_path = _save_tokenizer(root / "tokenizer.json", vocab)
    return {
        "weights": weights_dir / "model.safetensors",
        "pretrained": pretrained_dir,
        "tokenizer": tokenizer_path,
        "vocab": vocab,
        "root": root,
    }


@pytest.fixture(scope="module")
def clip(artifacts):
    return ClipEmbedder(artifacts["weights"], artifacts["tokenizer"], device="cpu", dim=PROJECTION_DIM)


def _noise_image(seed, size=(48, 40), mode="RGB"):
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 255, size=(size[1], size[0], 3), dtype=np.uint8)
    return Image.fromarray(pixels, "RGB").convert(mode)


class TestLoading:
    """Artifact loading and validation."""

    def test_reports_model_geometry(self, clip):
        assert clip.dim == PROJECTION_DIM
        assert clip.image_size == IMAGE_SIZE
        assert clip.max_length == MAX_POSITIONS
        assert clip.device.type == "cpu"
        assert clip.model_name == "clip-vit-base-patch32"
        assert clip.model_version == "v1"

    def test_loads_pretrained_directory(self, artifacts, clip):
        from_dir = ClipEmbedder(artifacts["pretrained"], artifacts["tokenizer"], device="cpu", dim=PROJECTION_DIM)
        image = _noise_image(1)
        np.testing.assert_allclose(from_dir.encode_image(image), clip.encode_image(image), atol=1e-5)

    def test_missing_weights(self, artifacts):
        with pytest.raises(ArtifactError):
            ClipEmbedder(artifacts["root"] / "absent.safetensors", artifacts["tokenizer"], device="cpu", dim=PROJECTION_DIM)

    def test_missing_tokenizer(self, artifacts):
        with pytest.raises(ArtifactError):
            ClipEmbedder(artifacts["weights"], artifacts["root"] / "absent.json", device="cpu", dim=PROJECTION_DIM)

    def test_corrupt_weights(self, artifacts, tmp_path):
        corrupt = tmp_path / "model.safetensors"
        corrupt.write_bytes(b"not a safetensors file")
        (tmp_path / "config.json").write_text((artifacts["weights"].parent / "config.json").read_text())
        with pytest.raises(ArtifactError):
            ClipEmbedder(corrupt, artifacts["tokenizer"], device="cpu", dim=PROJECTION_DIM)

    def test_malformed_tokenizer(self, artifacts, tmp_path):
        broken = tmp_path / "tokenizer.json"
        broken.write_text("{not json")
        with pytest.raises(ArtifactError):
            ClipEmbedder(artifacts["weights"], broken, device="cpu", dim=PROJECTION_DIM)

    def test_tokenizer_without_end_token(self, artifacts, tmp_path):
        vocab = {"<|unk|>": 0, "cat": 1}
        tokenizer_path = _save_tokenizer(tmp_path / "tokenizer.json", vocab, with_pad=False)
        with pytest.raises(ArtifactError):
            ClipEmbedder(artifacts["weights"], tokenizer_path, device="cpu", dim=PROJECTION_DIM)

    def test_configured_dimension_must_match_projection(self, artifacts):
        with pytest.raises(ArtifactError):
            ClipEmbedder(artifacts["weights"], artifacts["tokenizer"], device="cpu", dim=512)


class TestImageEncoding:
    def test_unit_norm_float32(self, clip):
        vector = clip.encode_image(_noise_image(2))
        assert vector.shape == (PROJECTION_DIM,)
        assert vector.dtype == np.float32
        assert abs(float(np.linalg.norm(vector)) - 1.0) < 1e-5

    def test_deterministic(self, clip):
        image = _noise_image(3)
        np.testing.assert_allclose(clip.encode_image(image), clip.encode_image(image), atol=1e-6)

    def test_bytes_path_and_image_agree(self, clip, tmp_path):
        image = _noise_image(4)
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        path = tmp_path / "noise.png"
        path.write_bytes(buffer.getvalue())

        reference = clip.encode_image(image)
        np.testing.assert_allclose(clip.encode_image(buffer.getvalue()), reference, atol=1e-5)
        np.testing.assert_allclose(clip.encode_image(path), reference, atol=1e-5)

    @pytest.mark.parametrize("mode", ["L", "RGBA", "P"])
    def test_non_rgb_modes(self, clip, mode):
        vector = clip.encode_image(_noise_image(5, mode=mode))
        assert abs(float(np.linalg.norm(vector)) - 1.0) < 1e-5

    @pytest.mark.parametrize("size", [(200, 20), (20, 200), (1, 1)])
    def test_any_aspect_ratio(self, clip, size):
        vector = clip.encode_image(_noise_image(6, size=size))
        assert vector.shape == (PROJECTION_DIM,)

    def test_undecodable_bytes(self, clip):
        with pytest.raises(DecodeError):
            clip.encode_image(b"\x89PNG but not really")

    def test_batch_matches_single(self, clip):
        images = [_noise_image(seed) for seed in (10, 11, 12)]
        batch = clip.encode_images_batch(images)
        assert batch.shape == (3, PROJECTION_DIM)
        for row, image in zip(batch, images):
            np.testing.assert_allclose(row, clip.encode_image(image), atol=1e-4)

    def test_empty_batch(self, clip):
        assert clip.encode_images_batch([]).shape == (0, PROJECTION_DIM)

    def test_forward_failure_raises_inference_error(self, clip, monkeypatch):
        class Broken(torch.nn.Module):
            def forward(self, pooled):
                raise RuntimeError("device lost")

        monkeypatch.setattr(clip.model, "visual_projection", Broken())
        with pytest.raises(InferenceError):
            clip.encode_image(_noise_image(13))

    def test_non_finite_output_raises_inference_error(self, clip, monkeypatch):
        class NaNs(torch.nn.Module):
            def forward(self, pooled):
                return torch.full((pooled.shape[0], PROJECTION_DIM), float("nan"))

        monkeypatch.setattr(clip.model, "visual_projection", NaNs())
        with pytest.raises(InferenceError):
            clip.encode_image(_noise_image(14))

    def test_zero_output_raises_inference_error(self, clip, monkeypatch):
        class Zeros(torch.nn.Module):
            def forward(self, pooled):
                return torch.zeros((pooled.shape[0], PROJECTION_DIM))

        monkeypatch.setattr(clip.model, "visual_projection", Zeros())
        with pytest.raises(InferenceError):
            clip.encode_image(_noise_image(15))


class TestTextEncoding:
    def test_unit_norm(self, clip):
        vector = clip.encode_text("a photo of a cat")
        assert vector.shape == (PROJECTION_DIM,)
        assert abs(float(np.linalg.norm(vector)) - 1.0) < 1e-5

    def test_deterministic(self, clip):
        np.testing.assert_allclose(clip.encode_text("red car"), clip.encode_text("red car"), atol=1e-6)

    def test_different_texts_differ(self, clip):
        assert not np.allclose(clip.encode_text("a cat"), clip.encode_text("a blue house on the beach"))

    def test_empty_string_is_valid(self, clip):
        vector = clip.encode_text("")
        assert abs(float(np.linalg.norm(vector)) - 1.0) < 1e-5

    def test_long_text_is_truncated(self, clip):
        long_text = " ".join(["a photo of the red car"] * 20)
        vector = clip.encode_text(long_text)
        assert abs(float(np.linalg.norm(vector)) - 1.0) < 1e-5

    def test_unknown_words_are_accepted(self, clip):
        vector = clip.encode_text("zebra xylophone")
        assert vector.shape == (PROJECTION_DIM,)

    def test_batch_matches_single(self, clip):
        texts = ["a cat", "a red car on the beach", "", "dog"]
        batch = clip.encode_texts_batch(texts)
        assert batch.shape == (4, PROJECTION_DIM)
        for row, text in zip(batch, texts):
            np.testing.assert_allclose(row, clip.encode_text(text), atol=1e-4)

    def test_empty_batch(self, clip):
        assert clip.encode_texts_batch([]).shape == (0, PROJECTION_DIM)

    def test_cross_modal_score_in_range(self, clip):
        score = clip.similarity(clip.encode_image(_noise_image(20)), clip.encode_text("a photo of a dog"))
        assert -1.0 - 1e-5 <= score <= 1.0 + 1e-5


class TestResolveDevice:
    def test_explicit_cpu(self):
        assert resolve_device("cpu").type == "cpu"

    def test_auto_returns_a_device(self):
        assert resolve_device("auto").type in {"cpu", "cuda", "mps"}

    def test_unknown_device(self):
        with pytest.raises(ValidationError):
            resolve_device("quantum")

    def test_cuda_without_cuda(self, monkeypatch):
        monkeypatch.setattr(torch.cuda, "is_available", lambda: False)
        with pytest.raises(ValidationError):
            resolve_device("cuda")
