"""Trainable model contract and its torch/Lightning Fabric implementation."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

import lightning as L
import orjson
import torch
from loguru import logger

from cnn_training.models.architectures import (
    ClassifierArchitecture,
    RegressorArchitecture,
    parse_architecture,
)
from cnn_training.models.network import SmallConvNet

WEIGHTS_FILENAME = "model.pt"
TOPOLOGY_FILENAME = "model.json"


@runtime_checkable
class TrainableModel(Protocol):
    """What the training loop and checkpoint manager need from a model.

    ``train_step`` and ``evaluate`` return plain float metrics that always
    include ``"loss"``. ``save`` writes everything needed to rebuild the model
    into an existing directory.
    """

    @property
    def input_shape(self) -> tuple[int, ...]: ...

    @property
    def output_shape(self) -> tuple[int, ...]: ...

    @property
    def learning_rate(self) -> float: ...

    def predict(self, images: torch.Tensor) -> torch.Tensor: ...

    def train_step(self, images: torch.Tensor, labels: torch.Tensor) -> dict[str, float]: ...

    def evaluate(self, images: torch.Tensor, labels: torch.Tensor) -> dict[str, float]: ...

    def save(self, path: Path) -> None: ...


class ImageModel:
    """SmallConvNet + Adam, placed and stepped through a Lightning Fabric.

    Owns the only mutable training state (weights and optimizer). Weights
    are saved without optimizer state: reloading always starts from a fresh
    optimizer, see :meth:`reset_optimizer`.

    Args:
        architecture: Classifier or regressor output variant.
        image_shape: Input (height, width, channels).
        learning_rate: Initial Adam learning rate.
        fabric: Fabric to place the model on. Defaults to a single device
            picked by ``accelerator="auto"``.
        network: Prebuilt network; built from the arguments when omitted.
    """

    def __init__(
        self,
        architecture: ClassifierArchitecture | RegressorArchitecture,
        image_shape: tuple[int, int, int],
        learning_rate: float = 1e-3,
        fabric: L.Fabric | None = None,
        network: torch.nn.Module | None = None,
    ) -> None:
        self.architecture = architecture
        self.image_shape = tuple(image_shape)
        self.fabric = fabric or L.Fabric(accelerator="auto", devices=1)
        if network is None:
            network = SmallConvNet(
                in_channels=self.image_shape[2],
                out_features=architecture.output_features,
            )
        self.network = self.fabric.setup_module(network)
        self.reset_optimizer(learning_rate)

    # ------------------------------------------------------------------
    # Shapes / hyperparameters
    # ------------------------------------------------------------------

    @property
    def input_shape(self) -> tuple[int, ...]:
        """Channels-first shape of one input image."""
        height, width, channels = self.image_shape
        return (channels, height, width)

    @property
    def output_shape(self) -> tuple[int, ...]:
        return (self.architecture.output_features,)

    @property
    def learning_rate(self) -> float:
        return float(self.optimizer.param_groups[0]["lr"])

    def reset_optimizer(self, learning_rate: float) -> None:
        """Bind a brand-new Adam optimizer, dropping any moment estimates."""
        optimizer = torch.optim.Adam(self.network.parameters(), lr=learning_rate)
        self.optimizer = self.fabric.setup_optimizers(optimizer)
        logger.debug(f"Optimizer reset: Adam(lr={learning_rate})")

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def train_step(self, images: torch.Tensor, labels: torch.Tensor) -> dict[str, float]:
        """One optimizer update on a batch."""
        images, labels = self.fabric.to_device((images, labels))
        self.network.train()
        self.optimizer.zero_grad()
        outputs = self.network(images)
        loss = self.architecture.loss(outputs, labels)
        self.fabric.backward(loss)
        self.optimizer.step()
        return {"loss": float(loss.item()), **self.architecture.metrics(outputs.detach(), labels)}

    @torch.no_grad()
    def evaluate(self, images: torch.Tensor, labels: torch.Tensor) -> dict[str, float]:
        """Loss and metric on a batch, without touching weights."""
        images, labels = self.fabric.to_device((images, labels))
        self.network.eval()
        outputs = self.network(images)
        loss = self.architecture.loss(outputs, labels)
        return {"loss": float(loss.item()), **self.architecture.metrics(outputs, labels)}

    @torch.no_grad()
    def predict(self, images: torch.Tensor) -> torch.Tensor:
        """Activated outputs (probabilities or values) on CPU."""
        images = self.fabric.to_device(images)
        self.network.eval()
        return self.architecture.activate(self.network(images)).cpu()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: Path) -> None:
        """Write weights and topology into the existing directory ``path``."""
        path = Path(path)
        topology = {
            "architecture": self.architecture.model_dump(),
            "image_shape": list(self.image_shape),
        }
        (path / TOPOLOGY_FILENAME).write_bytes(
            orjson.dumps(topology, option=orjson.OPT_INDENT_2)
        )
        self.fabric.save(path / WEIGHTS_FILENAME, {"network": self.network})

    @classmethod
    def load(
        cls,
        path: Path,
        learning_rate: float,
        fabric: L.Fabric | None = None,
    ) -> ImageModel:
        """Rebuild a saved model with its weights and a fresh optimizer.

        Raises:
            FileNotFoundError: ``path`` lacks the topology or weights file.
            ValueError: The topology file is not valid JSON / not a known variant.
        """
        path = Path(path)
        topology = orjson.loads((path / TOPOLOGY_FILENAME).read_bytes())
        model = cls(
            architecture=parse_architecture(topology["architecture"]),
            image_shape=tuple(topology["image_shape"]),  # type: ignore[arg-type]
            learning_rate=learning_rate,
            fabric=fabric,
        )
        weights_path = path / WEIGHTS_FILENAME
        if not weights_path.is_file():
            raise FileNotFoundError(f"Missing weights file: {weights_path}")
        model.fabric.load(weights_path, {"network": model.network})
        logger.info(f"Loaded {type(model.architecture).__name__} weights from {path}")
        return model
