"""Training entrypoint for cnn_training.

Usage:
    cnn-train                                         # defaults (classifier)
    cnn-train --config-name train_regressor           # text-metrics regressor
    cnn-train training.learning_rate=0.0001 \\
        run.resume_from=cnn-models/classifier         # fine-tune a saved model
    cnn-train data.reshuffle_each_epoch=true          # new train order every epoch
"""

import sys
from pathlib import Path
from typing import Any

import hydra
import lightning as L
from hydra.utils import to_absolute_path
from loguru import logger
from omegaconf import DictConfig, OmegaConf

# CRITICAL: import models to trigger @register decorators BEFORE Hydra parses config
import cnn_training.models  # noqa: F401
from cnn_training.config import DataConfig, RunConfig, TrainingConfig
from cnn_training.data import (
    FilenameLabelSource,
    ImageStreamDataModule,
    JsonLabelSource,
    LabelSource,
)
from cnn_training.errors import TrainingPipelineError
from cnn_training.models import ClassifierArchitecture, ImageModel, RegressorArchitecture
from cnn_training.training import (
    CheckpointManager,
    LoggingProgressReporter,
    ProgressReporter,
    RichProgressReporter,
    TrainingLoop,
)
from cnn_training.types import Checkpoint


def build_configs(
    cfg: DictConfig,
    architecture: ClassifierArchitecture | RegressorArchitecture,
) -> tuple[TrainingConfig, DataConfig, RunConfig]:
    """Turn the Hydra tree into frozen, validated config models.

    Relative paths are resolved against the directory the command was
    launched from, not Hydra's per-run output directory.
    """
    training: dict[str, Any] = OmegaConf.to_container(cfg.training, resolve=True)  # type: ignore[assignment]
    if training.get("label_shape") is None:
        training["label_shape"] = (architecture.output_features,)
    training_config = TrainingConfig(**training)

    data: dict[str, Any] = OmegaConf.to_container(cfg.data, resolve=True)  # type: ignore[assignment]
    data["image_dir"] = to_absolute_path(data["image_dir"])
    data["label_dir"] = to_absolute_path(data["label_dir"])
    data_config = DataConfig(**data)

    run: dict[str, Any] = OmegaConf.to_container(cfg.run, resolve=True)  # type: ignore[assignment]
    for key in ("temp_root", "model_root", "resume_from"):
        if run.get(key):
            run[key] = to_absolute_path(run[key])
    run_config = RunConfig(**run)
    return training_config, data_config, run_config


def build_label_source(cfg: DictConfig, label_shape: tuple[int, ...]) -> LabelSource:
    source = cfg.labels.get("source", "json")
    if source == "json":
        keys = cfg.labels.get("keys")
        return JsonLabelSource(
            label_shape=label_shape,
            keys=list(keys) if keys is not None else None,
        )
    if source == "filename":
        if len(label_shape) != 1:
            raise ValueError(f"filename labels need a 1-D label_shape, got {label_shape}")
        return FilenameLabelSource(
            num_classes=label_shape[0],
            field=cfg.labels.get("field", 1),
            separator=cfg.labels.get("separator", "_"),
        )
    raise ValueError(f"Unknown label source: {source!r}. Use 'json' or 'filename'.")


def build_reporter(name: str) -> ProgressReporter:
    if name == "rich":
        return RichProgressReporter()
    if name == "logging":
        return LoggingProgressReporter()
    raise ValueError(f"Unknown reporter: {name!r}. Use 'rich' or 'logging'.")


def run_training(cfg: DictConfig) -> Checkpoint:
    """Build every collaborator from cfg, train, and return the final checkpoint."""
    L.seed_everything(cfg.get("seed", 42))

    architecture = hydra.utils.instantiate(cfg.architecture)
    training_config, data_config, run_config = build_configs(cfg, architecture)
    fabric = L.Fabric(accelerator=cfg.get("accelerator", "auto"), devices=1)

    start_epoch = 0
    if run_config.resume_from:
        model, resumed = CheckpointManager.load_for_resume(
            Path(run_config.resume_from), training_config.learning_rate, fabric=fabric
        )
        start_epoch = resumed.epoch
        if model.architecture != architecture:
            logger.warning(
                f"Checkpoint architecture {model.architecture} overrides "
                f"configured {architecture}"
            )
            if cfg.training.get("label_shape") is None:
                training_config = training_config.model_copy(
                    update={"label_shape": tuple(model.output_shape)}
                )
    else:
        model = ImageModel(
            architecture=architecture,
            image_shape=training_config.image_shape,
            learning_rate=training_config.learning_rate,
            fabric=fabric,
        )
        logger.info(f"Created new {type(architecture).__name__} model")

    datamodule = ImageStreamDataModule(
        data_config,
        training_config,
        label_source=build_label_source(cfg, training_config.label_shape),
    )
    checkpoints = CheckpointManager(
        temp_root=Path(run_config.temp_root),
        model_root=Path(run_config.model_root),
        run_name=run_config.resolved_run_name,
    )
    loop = TrainingLoop(
        training_config,
        datamodule,
        model,
        checkpoints,
        reporter=build_reporter(cfg.get("reporter", "rich")),
        start_epoch=start_epoch,
    )
    return loop.run()


@hydra.main(version_base=None, config_path="conf", config_name="train")
def main(cfg: DictConfig) -> None:
    """Run training with the given Hydra config; exit 1 on a pipeline failure."""
    # Setup logging
    logger.remove()
    logger.add(sys.stderr, level=cfg.get("log_level", "INFO"))

    logger.info(f"Configuration:\n{OmegaConf.to_yaml(cfg)}")

    try:
        final = run_training(cfg)
    except TrainingPipelineError as e:
        logger.error(f"Run failed: {e}")
        sys.exit(1)
    logger.info(f"Final model saved to {final.path}")


if __name__ == "__main__":
    main()
