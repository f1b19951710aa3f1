"""
Upload wizard state machine.

The upload flow runs through three steps: upload, process and review. The
server evaluates the state from the documents the client is working with,
so no wizard state is stored between requests.
"""
import enum
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import structlog
from sqlalchemy.orm import Session

from invoicedesk.exceptions import ConflictError, DocumentNotFoundError
from invoicedesk.models.document import Document, DocumentStatus

logger = structlog.get_logger(__name__)


class WizardStep(str, enum.Enum):
    UPLOAD = "upload"
    PROCESS = "process"
    REVIEW = "review"


class WizardAction(str, enum.Enum):
    NONE = "none"
    ADVANCE = "advance"
    BACK = "back"


STEPS: List[WizardStep] = [WizardStep.UPLOAD, WizardStep.PROCESS, WizardStep.REVIEW]

STEP_TITLES = {
    WizardStep.UPLOAD: "Upload documents",
    WizardStep.PROCESS: "Extract invoice data",
    WizardStep.REVIEW: "Review and commit",
}


@dataclass
class WizardState:
    step: WizardStep
    can_advance: bool
    can_go_back: bool
    blocked_reason: Optional[str] = None
    validated_steps: List[WizardStep] = field(default_factory=list)
    document_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def index(self) -> int:
        return STEPS.index(self.step)

    @property
    def title(self) -> str:
        return STEP_TITLES[self.step]


class UploadWizard:
    """Evaluates and moves the upload wizard for a set of documents."""

    def __init__(self, db: Session):
        self.db = db

    def _load(self, document_ids: Sequence[uuid.UUID]) -> List[Document]:
        documents = []
        for document_id in dict.fromkeys(document_ids):
            document = self.db.get(Document, document_id)
            if document is None:
                raise DocumentNotFoundError(str(document_id))
            documents.append(document)
        return documents

    @staticmethod
    def _blocked_reason(step: WizardStep, documents: List[Document]) -> Optional[str]:
        if step == WizardStep.UPLOAD and not documents:
            return "Upload at least one document to continue"
        if step == WizardStep.PROCESS and not any(
            d.status == DocumentStatus.PROCESSED for d in documents
        ):
            return "At least one document must finish processing to continue"
        if step == WizardStep.REVIEW:
            return "Review is the last step"
        return None

    def state(self, step: WizardStep, documents: List[Document]) -> WizardState:
        reason = self._blocked_reason(step, documents)
        index = STEPS.index(step)

        validated = [
            s for s in STEPS[: index + 1]
            if self._blocked_reason(s, documents) is None
        ]

        counts = {s.value: 0 for s in DocumentStatus}
        for document in documents:
            counts[document.status.value] += 1

        return WizardState(
            step=step,
            can_advance=reason is None,
            can_go_back=index > 0,
            blocked_reason=reason,
            validated_steps=validated,
            document_counts=counts,
        )

    def evaluate(
        self,
        step: WizardStep,
        document_ids: Sequence[uuid.UUID],
        action: WizardAction = WizardAction.NONE,
    ) -> WizardState:
        """
        Evaluate the wizard and optionally move it one step.

        Args:
            step: Step the client is on.
            document_ids: Documents uploaded in this wizard session.
            action: Move forward, back, or only report the state.

        Returns:
            State of the step the wizard ends on.

        Raises:
            DocumentNotFoundError: If a document id is unknown.
            ConflictError: If the requested move is not allowed.
        """
        documents = self._load(document_ids)
        current = self.state(step, documents)

        if action == WizardAction.ADVANCE:
            if not current.can_advance:
                raise ConflictError(
                    current.blocked_reason or "Cannot advance",
                    details={"step": step.value, "action": action.value},
                )
            current = self.state(STEPS[current.index + 1], documents)
        elif action == WizardAction.BACK:
            if not current.can_go_back:
                raise ConflictError(
                    "Already at the first step",
                    details={"step": step.value, "action": action.value},
                )
            current = self.state(STEPS[current.index - 1], documents)

        logger.debug("wizard_evaluated", step=current.step.value, action=action.value)
        return current
