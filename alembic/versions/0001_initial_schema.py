"""initial schema

Revision ID: 0001
Revises:
Create Date: 2024-01-15 10:00:00
"""
from alembic import op
import sqlalchemy as sa

from models.base import IngestionPhase, JSONType, RunStatus
from models.geonames import FEATURE_CLASSES

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "geonames_alternate_names",
        sa.Column("alternate_name_id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("geonameid", sa.BigInteger(), nullable=False),
        sa.Column("isolanguage", sa.String(length=7), nullable=True),
        sa.Column("alternate_name", sa.String(length=400), nullable=True),
        sa.Column("is_preferred_name", sa.Boolean(), nullable=True),
        sa.Column("is_short_name", sa.Boolean(), nullable=True),
        sa.Column("is_colloquial", sa.Boolean(), nullable=True),
        sa.Column("is_historic", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("alternate_name_id"),
    )
    op.create_index("ix_geonames_alternate_names_geonameid", "geonames_alternate_names", ["geonameid"])
    op.create_index("ix_geonames_alternate_names_isolanguage", "geonames_alternate_names", ["isolanguage"])

    op.create_table(
        "geonames_iso_language_codes",
        sa.Column("id", sa.Integer(), sa.Identity(), nullable=False),
        sa.Column("iso_639_3", sa.String(length=3), nullable=True),
        sa.Column("iso_639_2", sa.String(length=50), nullable=True),
        sa.Column("iso_639_1", sa.String(length=2), nullable=True),
        sa.Column("language_name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_geonames_iso_language_codes_iso_639_3", "geonames_iso_language_codes", ["iso_639_3"])

    feature_classes = op.create_table(
        "geonames_feature_classes",
        sa.Column("id", sa.CHAR(length=1), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.bulk_insert(
        feature_classes,
        [{"id": key, "description": value} for key, value in FEATURE_CLASSES.items()]
    )

    op.create_table(
        "ingestion_runs",
        sa.Column("id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), autoincrement=True, nullable=False),
        sa.Column("run_id", sa.Uuid(), nullable=False),
        sa.Column("dataset", sa.String(length=100), nullable=False),
        sa.Column("country_code", sa.String(length=2), nullable=True),
        sa.Column("source_url", sa.String(length=500), nullable=False),
        sa.Column("target_table", sa.String(length=100), nullable=False),
        sa.Column("staging_table", sa.String(length=100), nullable=False),
        sa.Column("status", sa.Enum(RunStatus), nullable=False),
        sa.Column("phase", sa.Enum(IngestionPhase), nullable=False),
        sa.Column("failed_phase", sa.Enum(IngestionPhase), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_seconds", sa.Float(), nullable=True),
        sa.Column("chunks_total", sa.Integer(), nullable=True),
        sa.Column("chunks_loaded", sa.Integer(), nullable=True),
        sa.Column("rows_loaded", sa.BigInteger(), nullable=True),
        sa.Column("download_bytes", sa.BigInteger(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("config_snapshot", JSONType, nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ingestion_runs_run_id", "ingestion_runs", ["run_id"], unique=True)
    op.create_index("ix_ingestion_runs_dataset", "ingestion_runs", ["dataset"])
    op.create_index("ix_ingestion_runs_status", "ingestion_runs", ["status"])
    op.create_index("ix_ingestion_runs_started_at", "ingestion_runs", ["started_at"])
    op.create_index(
        "idx_ingestion_run_dataset_started",
        "ingestion_runs",
        ["dataset", "country_code", "started_at"]
    )

    op.create_table(
        "ingestion_errors",
        sa.Column("id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), autoincrement=True, nullable=False),
        sa.Column("run_id", sa.Uuid(), nullable=True),
        sa.Column("dataset", sa.String(length=100), nullable=False),
        sa.Column("country_code", sa.String(length=2), nullable=True),
        sa.Column("phase", sa.Enum(IngestionPhase), nullable=False),
        sa.Column("chunk_number", sa.Integer(), nullable=True),
        sa.Column("artifact_path", sa.String(length=1000), nullable=True),
        sa.Column("source_url", sa.String(length=500), nullable=True),
        sa.Column("error_type", sa.String(length=100), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("context", JSONType, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ingestion_errors_run_id", "ingestion_errors", ["run_id"])
    op.create_index(
        "idx_ingestion_error_dataset_created",
        "ingestion_errors",
        ["dataset", "phase", "created_at"]
    )


def downgrade():
    op.drop_table("ingestion_errors")
    op.drop_table("ingestion_runs")
    op.drop_table("geonames_feature_classes")
    op.drop_table("geonames_iso_language_codes")
    op.drop_table("geonames_alternate_names")
    sa.Enum(name="ingestionphase").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="runstatus").drop(op.get_bind(), checkfirst=True)
