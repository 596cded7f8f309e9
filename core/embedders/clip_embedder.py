# Path: core/embedders/clip_embedder.py
# Purpose: Provide the CLIP dual-encoder embedder backed by pretrained weights and a serialized tokenizer.
# Layer: core/embedders.
# Details: Loads weights (safetensors file or pretrained directory) and tokenizer.json once, binds to a device,
#          and runs the image/text towers with deterministic preprocessing.

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, List, Sequence, Tuple

import numpy as np
import torch
from PIL import Image, ImageOps
from safetensors import SafetensorError
from safetensors.torch import load_file
from tokenizers import Tokenizer
from transformers import CLIPConfig, CLIPModel

from core.errors import ArtifactError, DecodeError, InferenceError, ValidationError
from .base import Embedder, ImageInput, open_image

if TYPE_CHECKING:
    from config.settings import EmbedderSettings

logger = logging.getLogger(__name__)

PAD_TOKEN = "<|endoftext|>"
# Triangle filter, matching the resize-to-fill used when the vectors were first produced.
RESAMPLE_FILTER = Image.Resampling.BILINEAR


def resolve_device(preference: str = "auto") -> torch.device:
    """Pick the compute device once; ``auto`` prefers CUDA, then Apple MPS, then CPU."""

    preference = (preference or "auto").strip().lower()
    if preference == "auto":
        if torch.cuda.is_available():
            return torch.device("cuda")
        mps = getattr(torch.backends, "mps", None)
        if mps is not None and mps.is_available():
            return torch.device("mps")
        return torch.device("cpu")

    if preference.startswith("cuda") and not torch.cuda.is_available():
        raise ValidationError(f"Device {preference!r} requested but CUDA is not available.")
    try:
        return torch.device(preference)
    except RuntimeError as exc:
        raise ValidationError(f"Unknown device {preference!r}.") from exc


class ClipEmbedder(Embedder):
    """CLIP image/text encoder producing unit-length vectors in a shared space.

    The model and tokenizer are read-only after construction, so one instance
    can serve any number of threads without locking.
    """

    def __init__(
        self,
        model_path: Path | str,
        tokenizer_path: Path | str,
        device: str = "auto",
        dim: int = 512,
        model_name: str = "clip-vit-base-patch32",
        model_version: str = "v1",
    ) -> None:
        self.name = "clip"
        self.model_name = model_name
        self.model_version = model_version
        self.dim = dim
        self.device = resolve_device(device)

        self.tokenizer, self.pad_id = self._load_tokenizer(Path(tokenizer_path))
        self.model = self._load_model(Path(model_path))
        self.config: CLIPConfig = self.model.config

        if self.config.projection_dim != dim:
            raise ArtifactError(
                f"Model projects to {self.config.projection_dim} dimensions but {dim} are configured."
            )

        self.image_size = int(self.config.vision_config.image_size)
        self.max_length = int(self.config.text_config.max_position_embeddings)
        self.tokenizer.no_padding()
        self.tokenizer.enable_truncation(max_length=self.max_length)

        logger.info(
            "CLIP embedder loaded",
            extra={
                "event_type": "embedder_loaded",
                "model_name": model_name,
                "model_version": model_version,
                "device": str(self.device),
                "dim": dim,
                "image_size": self.image_size,
            },
        )

    @classmethod
    def from_settings(cls, settings: "EmbedderSettings") -> "ClipEmbedder":
        return cls(
            model_path=settings.model_path,
            tokenizer_path=settings.tokenizer_path,
            device=settings.device,
            dim=settings.dimension,
            model_name=settings.model_name,
            model_version=settings.model_version,
        )

    @staticmethod
    def _load_tokenizer(tokenizer_path: Path) -> Tuple[Tokenizer, int]:
        if not tokenizer_path.is_file():
            raise ArtifactError(f"Tokenizer file not found: {tokenizer_path}")
        try:
            tokenizer = Tokenizer.from_file(str(tokenizer_path))
        except Exception as exc:  # tokenizers raises bare Exception on malformed JSON
            raise ArtifactError(f"Could not load tokenizer from {tokenizer_path}: {exc}") from exc

        pad_id = tokenizer.token_to_id(PAD_TOKEN)
        if pad_id is None:
            raise ArtifactError(f"Tokenizer {tokenizer_path} has no {PAD_TOKEN} token to pad with.")
        return tokenizer, pad_id

    def _load_model(self, model_path: Path) -> CLIPModel:
        if not model_path.exists():
            raise ArtifactError(f"Model weights not found: {model_path}")

        try:
            if model_path.is_dir():
                model = CLIPModel.from_pretrained(str(model_path))
            else:
                model = CLIPModel(self._load_config(model_path))
                state_dict = load_file(str(model_path))
                incompatible = model.load_state_dict(state_dict, strict=False)
                # position_ids is a buffer rebuilt at construction time.
                missing = [key for key in incompatible.missing_keys if not key.endswith("position_ids")]
                if missing:
                    raise ArtifactError(
                        f"Weights in {model_path} are missing {len(missing)} tensors, e.g. {missing[0]}."
                    )
        except ArtifactError:
            raise
        except (OSError, ValueError, RuntimeError, SafetensorError) as exc:
            raise ArtifactError(f"Could not load model weights from {model_path}: {exc}") from exc

        model.to(self.device)
        model.eval()
        return model

    @staticmethod
    def _load_config(model_path: Path) -> CLIPConfig:
        """Read config.json beside the weights, defaulting to the ViT-B/32 architecture."""

        config_file = model_path.with_name("config.json")
        if config_file.is_file():
            return CLIPConfig.from_json_file(str(config_file))
        return CLIPConfig()

    def _preprocess(self, image: Image.Image) -> np.ndarray:
        """Resize-to-fill and center crop to the model's square input, CHW in [-1, 1]."""

        try:
            rgb = image.convert("RGB")
            fitted = ImageOps.fit(rgb, (self.image_size, self.image_size), method=RESAMPLE_FILTER)
        except (OSError, ValueError) as exc:
            raise DecodeError(f"Could not prepare image for the model: {exc}") from exc
        pixels = np.asarray(fitted, dtype=np.float32)
        return pixels.transpose(2, 0, 1) * (2.0 / 255.0) - 1.0

    def _pixel_batch(self, images: Sequence[ImageInput]) -> torch.Tensor:
        arrays = [self._preprocess(open_image(image)) for image in images]
        return torch.from_numpy(np.stack(arrays)).to(self.device)

    def _token_batch(self, texts: Sequence[str]) -> Tuple[torch.Tensor, torch.Tensor]:
        """Tokenize and right-pad to the longest sequence with the pad token."""

        encodings = self.tokenizer.encode_batch(list(texts), add_special_tokens=True)
        sequences: List[List[int]] = [encoding.ids for encoding in encodings]
        longest = max(1, max(len(ids) for ids in sequences))

        input_ids = [ids + [self.pad_id] * (longest - len(ids)) for ids in sequences]
        attention_mask = [[1] * len(ids) + [0] * (longest - len(ids)) for ids in sequences]
        return (
            torch.tensor(input_ids, dtype=torch.long, device=self.device),
            torch.tensor(attention_mask, dtype=torch.long, device=self.device),
        )

    def _image_features(self, pixel_values: torch.Tensor) -> np.ndarray:
        try:
            with torch.no_grad():
                pooled = self.model.vision_model(pixel_values=pixel_values).pooler_output
                features = self.model.visual_projection(pooled)
        except (RuntimeError, ValueError, IndexError) as exc:
            raise InferenceError(f"Image forward pass failed: {exc}") from exc
        return self._finalize(features)

    def _text_features(self, input_ids: torch.Tensor, attention_mask: torch.Tensor) -> np.ndarray:
        try:
            with torch.no_grad():
                pooled = self.model.text_model(input_ids=input_ids, attention_mask=attention_mask).pooler_output
                features = self.model.text_projection(pooled)
        except (RuntimeError, ValueError, IndexError) as exc:
            raise InferenceError(f"Text forward pass failed: {exc}") from exc
        return self._finalize(features)

    def _finalize(self, features: torch.Tensor) -> np.ndarray:
        matrix = features.detach().to("cpu", dtype=torch.float32).numpy()
        if not np.isfinite(matrix).all():
            raise InferenceError("Model produced non-finite values.")
        if (np.linalg.norm(matrix, axis=1) == 0).any():
            raise InferenceError("Model produced a zero vector that cannot be normalized.")
        return self._normalize_rows(matrix)

    def encode_image(self, image: ImageInput) -> np.ndarray:
        """Embed one image; ``DecodeError`` if it is not a readable raster image."""

        return self._image_features(self._pixel_batch([image]))[0]

    def encode_text(self, text: str) -> np.ndarray:
        """Embed one text; the empty string is valid and yields the empty-context embedding."""

        input_ids, attention_mask = self._token_batch([text])
        return self._text_features(input_ids, attention_mask)[0]

    def encode_images_batch(self, images: Sequence[ImageInput]) -> np.ndarray:
        if not images:
            return np.empty((0, self.dim), dtype=np.float32)
        return self._image_features(self._pixel_batch(images))

    def encode_texts_batch(self, texts: Sequence[str]) -> np.ndarray:
        if not texts:
            return np.empty((0, self.dim), dtype=np.float32)
        input_ids, attention_mask = self._token_batch(texts)
        return self._text_features(input_ids, attention_mask)
