"""
Module: reimbursement_kernel.models.request
Responsibility: ORM persistence for reimbursement requests, their review
    history and their supporting-document references.

Architecture position: Kernel > Models.  May import from db/base.py only
    (domain types are imported lazily for DTO conversion).

Invariants enforced:
    - application_id uniqueness: UNIQUE(application_id).  A concurrent
      allocation that computed the same ID fails at INSERT and is retried
      by the service.
    - Status values: DB check constraint limits status to the workflow's
      closed set.
    - Optimistic concurrency: ``version`` is the mapper's version_id_col,
      so every UPDATE carries ``WHERE version = <loaded version>``.
    - Review comments are append-only: UNIQUE(request_id, position) and the
      ORM listeners in db/immutability.py.

Failure modes:
    - IntegrityError on duplicate application_id.
    - StaleDataError when the row's version moved since it was loaded.
    - ImmutabilityViolationError on review comment UPDATE/DELETE, or on any
      change to a request in a terminal status.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reimbursement_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from reimbursement_kernel.domain.request import (
        DocumentRef,
        ReimbursementRequest,
        ReviewComment,
    )


class ReimbursementRequestModel(Base):
    """Persistent reimbursement request.

    Contract:
        One row per application ID.  ``status`` and ``version`` change only
        through the request store's ``update``; identity columns never
        change after INSERT.

    Guarantees:
        - application_id is unique.
        - comments are ordered by ``position`` and only ever appended.
    """

    __tablename__ = "reimbursement_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'UNDER_COORDINATOR', 'UNDER_HOD', "
            "'UNDER_PRINCIPAL', 'APPROVED', 'DISBURSED', 'REJECTED')",
            name="ck_reimbursement_requests_valid_status",
        ),
        CheckConstraint("amount >= 0", name="ck_reimbursement_requests_amount"),
        CheckConstraint("version >= 1", name="ck_reimbursement_requests_version"),
        Index("ix_reimbursement_requests_status_created", "status", "created_at"),
        Index("ix_reimbursement_requests_claimant", "claimant_user_id", "created_at"),
    )

    application_id: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True,
    )
    applicant_type: Mapped[str] = mapped_column(String(20), nullable=False)
    reimbursement_type: Mapped[str] = mapped_column(String(32), nullable=False)
    department: Mapped[str] = mapped_column(String(100), nullable=False)
    academic_year: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING")
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    claimant_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    claimant_name: Mapped[str] = mapped_column(String(200), nullable=False)
    claimant_email: Mapped[str] = mapped_column(String(254), nullable=False)
    student_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    division: Mapped[str | None] = mapped_column(String(20), nullable=True)
    job_title: Mapped[str | None] = mapped_column(String(100), nullable=True)

    bank_account_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    bank_ifsc_code: Mapped[str | None] = mapped_column(String(11), nullable=True)
    bank_account_number: Mapped[str | None] = mapped_column(String(18), nullable=True)

    remarks: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    comments: Mapped[list["ReviewCommentModel"]] = relationship(
        "ReviewCommentModel",
        back_populates="request",
        order_by="ReviewCommentModel.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    documents: Mapped[list["RequestDocumentModel"]] = relationship(
        "RequestDocumentModel",
        back_populates="request",
        order_by="RequestDocumentModel.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    def __repr__(self) -> str:
        return (
            f"<ReimbursementRequest {self.application_id} "
            f"status={self.status} v{self.version}>"
        )

    def to_dto(self) -> ReimbursementRequest:
        """Convert ORM model to frozen domain aggregate."""
        from reimbursement_kernel.domain.codes import ApplicantType, ReimbursementType
        from reimbursement_kernel.domain.request import (
            BankDetails,
            ClaimantDetails,
            ReimbursementRequest as ReimbursementRequestDTO,
        )
        from reimbursement_kernel.domain.workflow import RequestStatus

        bank = None
        if self.bank_account_number is not None:
            bank = BankDetails(
                account_name=self.bank_account_name or "",
                ifsc_code=self.bank_ifsc_code or "",
                account_number=self.bank_account_number,
            )

        return ReimbursementRequestDTO(
            application_id=self.application_id,
            applicant_type=ApplicantType(self.applicant_type),
            reimbursement_type=ReimbursementType(self.reimbursement_type),
            department=self.department,
            academic_year=self.academic_year,
            amount=self.amount,
            claimant=ClaimantDetails(
                user_id=self.claimant_user_id,
                name=self.claimant_name,
                email=self.claimant_email,
                student_id=self.student_id,
                division=self.division,
                job_title=self.job_title,
            ),
            bank=bank,
            remarks=self.remarks,
            status=RequestStatus(self.status),
            history=tuple(c.to_dto() for c in self.comments),
            version=self.version,
            documents=tuple(d.to_dto() for d in self.documents),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_dto(cls, dto: ReimbursementRequest) -> ReimbursementRequestModel:
        """Create ORM model (with history and documents) from the aggregate."""
        model = cls(
            application_id=dto.application_id,
            applicant_type=dto.applicant_type.value,
            reimbursement_type=dto.reimbursement_type.value,
            department=dto.department,
            academic_year=dto.academic_year,
            amount=dto.amount,
            status=dto.status.value,
            version=dto.version,
            created_at=dto.created_at,
            updated_at=dto.updated_at,
            remarks=dto.remarks,
        )
        model.apply_claim_fields(dto)
        model.comments = [
            ReviewCommentModel.from_dto(entry, position)
            for position, entry in enumerate(dto.history, start=1)
        ]
        model.documents = [
            RequestDocumentModel.from_dto(doc, position)
            for position, doc in enumerate(dto.documents, start=1)
        ]
        return model

    def apply_claim_fields(self, dto: ReimbursementRequest) -> None:
        """Copy the owner-editable claimant, bank and amount fields."""
        self.amount = dto.amount
        self.remarks = dto.remarks
        self.claimant_user_id = dto.claimant.user_id
        self.claimant_name = dto.claimant.name
        self.claimant_email = dto.claimant.email
        self.student_id = dto.claimant.student_id
        self.division = dto.claimant.division
        self.job_title = dto.claimant.job_title
        self.bank_account_name = dto.bank.account_name if dto.bank else None
        self.bank_ifsc_code = dto.bank.ifsc_code if dto.bank else None
        self.bank_account_number = dto.bank.account_number if dto.bank else None


class ReviewCommentModel(Base):
    """One review-history entry. Append-only.

    Guarantees:
        - UNIQUE(request_id, position): a position is written once.
        - UPDATE and DELETE are blocked by ORM listeners.
    """

    __tablename__ = "review_comments"

    __table_args__ = (
        UniqueConstraint("request_id", "position", name="uq_review_comments_position"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("reimbursement_requests.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(nullable=False)
    from_status: Mapped[str] = mapped_column(String(32), nullable=False)
    to_status: Mapped[str] = mapped_column(String(32), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(32), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    request: Mapped[ReimbursementRequestModel] = relationship(
        "ReimbursementRequestModel", back_populates="comments",
    )

    def __repr__(self) -> str:
        return f"<ReviewComment #{self.position} {self.from_status}->{self.to_status}>"

    def to_dto(self) -> ReviewComment:
        from reimbursement_kernel.domain.request import ReviewComment as ReviewCommentDTO
        from reimbursement_kernel.domain.workflow import RequestStatus

        return ReviewCommentDTO(
            from_status=RequestStatus(self.from_status),
            to_status=RequestStatus(self.to_status),
            actor_role=self.actor_role,
            comment=self.comment,
            created_at=self.created_at,
        )

    @classmethod
    def from_dto(cls, dto: ReviewComment, position: int) -> ReviewCommentModel:
        return cls(
            position=position,
            from_status=dto.from_status.value,
            to_status=dto.to_status.value,
            actor_role=dto.actor_role,
            comment=dto.comment,
            created_at=dto.created_at,
        )


class RequestDocumentModel(Base):
    """Reference to a supporting document stored elsewhere."""

    __tablename__ = "request_documents"

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("reimbursement_requests.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(nullable=False)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    mimetype: Mapped[str | None] = mapped_column(String(100), nullable=True)
    public_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    request: Mapped[ReimbursementRequestModel] = relationship(
        "ReimbursementRequestModel", back_populates="documents",
    )

    def to_dto(self) -> DocumentRef:
        from reimbursement_kernel.domain.request import DocumentRef as DocumentRefDTO

        return DocumentRefDTO(
            filename=self.filename,
            url=self.url,
            mimetype=self.mimetype,
            public_id=self.public_id,
        )

    @classmethod
    def from_dto(cls, dto: DocumentRef, position: int) -> RequestDocumentModel:
        return cls(
            position=position,
            filename=dto.filename,
            url=dto.url,
            mimetype=dto.mimetype,
            public_id=dto.public_id,
        )
