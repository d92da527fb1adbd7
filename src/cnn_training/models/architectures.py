"""Closed set of output-head variants: classifier or regressor.

The variant decides the output width, the loss, the reported metric and how
raw network outputs are turned into predictions. Everything else about the
pipeline is shared.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

import torch
import torch.nn.functional as F
from pydantic import BaseModel, Field, TypeAdapter
from torchmetrics.functional import mean_squared_error
from torchmetrics.functional.classification import multiclass_accuracy

from cnn_training.utils.hydra import register


@register(group="architecture", name="classifier")
class ClassifierArchitecture(BaseModel, frozen=True):
    """Softmax classifier trained on (possibly soft) class-probability targets."""

    kind: Literal["classifier"] = "classifier"
    num_classes: int = Field(default=7, ge=2)

    @property
    def output_features(self) -> int:
        return self.num_classes

    def loss(self, logits: torch.Tensor, targets: torch.Tensor) -> torch.Tensor:
        # cross_entropy accepts class-probability targets of shape (B, C)
        return F.cross_entropy(logits, targets)

    def metrics(self, logits: torch.Tensor, targets: torch.Tensor) -> dict[str, float]:
        accuracy = multiclass_accuracy(
            logits,
            targets.argmax(dim=1),
            num_classes=self.num_classes,
            average="micro",
        )
        return {"accuracy": float(accuracy.item())}

    def activate(self, logits: torch.Tensor) -> torch.Tensor:
        return torch.softmax(logits, dim=1)


@register(group="architecture", name="regressor")
class RegressorArchitecture(BaseModel, frozen=True):
    """Linear-output regressor trained with mean squared error."""

    kind: Literal["regressor"] = "regressor"
    num_outputs: int = Field(default=8, ge=1)

    @property
    def output_features(self) -> int:
        return self.num_outputs

    def loss(self, outputs: torch.Tensor, targets: torch.Tensor) -> torch.Tensor:
        return F.mse_loss(outputs, targets)

    def metrics(self, outputs: torch.Tensor, targets: torch.Tensor) -> dict[str, float]:
        return {"mse": float(mean_squared_error(outputs, targets).item())}

    def activate(self, outputs: torch.Tensor) -> torch.Tensor:
        return outputs


Architecture = Annotated[
    ClassifierArchitecture | RegressorArchitecture,
    Field(discriminator="kind"),
]

_ARCHITECTURE_ADAPTER: TypeAdapter[Any] = TypeAdapter(Architecture)


def parse_architecture(data: dict[str, Any]) -> ClassifierArchitecture | RegressorArchitecture:
    """Rebuild an architecture variant from its serialized form (``model_dump()``)."""
    return _ARCHITECTURE_ADAPTER.validate_python(data)  # type: ignore[no-any-return]
