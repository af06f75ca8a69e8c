"""Configuration models for attention-guided tile selection."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from tilescope.attention.scoring import AttentionMode
from tilescope.config import Config


class TileFeatureConfig(BaseModel):
    """Patch geometry and feature extraction settings.

    Attributes:
        patch_size: Side length of a square patch in pixels.
        stride: Step between neighbouring patches in pixels.
        bins: Number of histogram bins per color channel.
        histogram_epsilon: Added to the pixel count when normalizing histograms.
        divergence_epsilon: Added to every histogram component before JSD.
        entropy_epsilon: Added inside the log when computing entropy.
    """

    patch_size: int = Field(default=128, ge=1)
    stride: int = Field(default=64, ge=1)
    bins: int = Field(default=64, ge=1)
    histogram_epsilon: float = Field(default=1e-8, ge=0.0)
    divergence_epsilon: float = Field(default=1e-8, gt=0.0)
    entropy_epsilon: float = Field(default=1e-8, gt=0.0)


class AttentionSelectorConfig(BaseSettings):
    """Unified configuration for the tile attention engine (scoring, smoothing, selection, I/O)."""

    class Config:
        env_prefix = "TILESCOPE_ATTN_"
        env_nested_delimiter = "__"
        frozen = True
        protected_namespaces = ()

    # --- Decoding / classifier input ---
    image_size: int = Field(
        default=512,
        ge=1,
        description="Side length images are resized to before partitioning.",
    )
    model_input_size: int = Field(
        default=224,
        ge=1,
        description="Resize target for patches fed to the classifier.",
    )

    # --- Scoring ---
    mode: AttentionMode = Field(default=AttentionMode.FULL)
    lambda_weights: tuple[float, float, float] = Field(
        default=(0.3, 0.4, 0.3),
        description="Weights for (divergence, unhealthy probability, entropy). Not normalized.",
    )
    probability_tolerance: float = Field(
        default=1e-3,
        gt=0.0,
        description="Allowed deviation of a classifier output sum from 1.",
    )

    # --- Smoothing ---
    alpha: float = Field(default=0.2, gt=0.0, le=1.0)
    namespace_keys_by_image: bool = Field(
        default=True,
        description="If true, tile keys include the image identity so unrelated images never share EMA state.",
    )

    # --- Selection ---
    epsilon: float = Field(default=0.2, ge=0.0, le=1.0)
    selection_size: int = Field(default=5, ge=0)
    seed: int | None = Field(default=None, description="Seed for the selector's random source.")

    # --- Evaluation ---
    overlap_threshold: float = Field(default=0.5, ge=0.0, le=1.0)

    # --- Classifier ---
    model_path: Path = Field(default=Path("model/patch_classifier.pt"))
    device: str = Field(default="cpu")
    batch_size: int = Field(
        default=1,
        ge=1,
        description="Patches per classifier call when the classifier supports batch inference.",
    )

    # --- Reference ---
    image_dir: Path = Field(default=Path("img"))
    reference_images: tuple[str, ...] = Field(default=("healthy_1.jpg", "healthy_2.jpg", "healthy_3.jpg"))
    reference_histogram_path: Path = Field(default=Path("output/reference_histogram.npy"))

    # --- Output ---
    output_dir: Path = Field(default=Path("output"))
    visualize_top_k: int = Field(default=5, ge=0)
    save_tiles: bool = Field(default=False)
    image_extensions: tuple[str, ...] = Field(default=(".png", ".jpg", ".jpeg", ".tif", ".tiff"))
    max_images: int | None = Field(default=None, ge=1)

    # --- Shared Feature Config ---
    feature_config: TileFeatureConfig = Field(default_factory=TileFeatureConfig)

    @field_validator("image_extensions", "reference_images", mode="before")
    @classmethod
    def _coerce_tuple(cls, value: object) -> tuple[str, ...]:
        """Accept lists and single strings for tuple-valued settings."""

        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return (str(value),)

    @property
    def patch_size(self) -> int:
        return self.feature_config.patch_size

    @property
    def stride(self) -> int:
        return self.feature_config.stride

    @property
    def bins(self) -> int:
        return self.feature_config.bins


def load_attention_config() -> AttentionSelectorConfig:
    """Load attention selector configuration.

    Returns:
        AttentionSelectorConfig instance with the global debug cap applied.
    """

    global_config = Config()
    config = AttentionSelectorConfig()

    updates: dict[str, object] = {}
    if global_config.debug:
        debug_limit = global_config.debug_max_images
        if config.max_images is None or config.max_images > debug_limit:
            updates["max_images"] = debug_limit

    # Fall back to the global directories when the module-level ones are left at their defaults.
    if config.image_dir == Path("img") and global_config.image_dir != Path("img"):
        updates["image_dir"] = global_config.image_dir
    if config.output_dir == Path("output") and global_config.output_dir != Path("output"):
        updates["output_dir"] = global_config.output_dir
        updates["reference_histogram_path"] = global_config.output_dir / config.reference_histogram_path.name
    if config.model_path == Path("model/patch_classifier.pt") and global_config.model_dir != Path("model"):
        updates["model_path"] = global_config.model_dir / config.model_path.name

    if updates:
        config = config.model_copy(update=updates)
    return config
