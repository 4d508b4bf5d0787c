"""Invoice document pipeline: load -> aggregate -> render -> document -> store.

One invocation handles one invoice id. Stages run strictly in order and
are never retried here; the only retry lives inside the storage upsert.
A failing stage surfaces as PipelineError tagged with that stage, chained
to the original exception. Nothing caller-visible has happened unless the
run reaches STORED.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from . import db
from .config import Config
from .document import DocumentRenderer, make_renderer
from .errors import PipelineError
from .models import InvoiceSnapshot
from .render import TemplateSet, build_invoice_model, load_templates, render_invoice
from .store import PDF_CONTENT_TYPE, DocumentStore, StoredDocument, document_key, make_store, upsert_document
from .totals import InvoiceTotals, compute_invoice_totals

logger = logging.getLogger("hourbill.pipeline")

SnapshotLoader = Callable[[str], InvoiceSnapshot]
TimingHook = Callable[[str, str, float | None], None]


class Stage(Enum):
    LOADED = "loaded"
    AGGREGATED = "aggregated"
    RENDERED = "rendered"
    DOCUMENTED = "documented"
    STORED = "stored"
    FAILED = "failed"


# Component responsible for reaching each stage; used to tag failures.
STAGE_COMPONENTS = {
    Stage.LOADED: "load",
    Stage.AGGREGATED: "aggregate",
    Stage.RENDERED: "render",
    Stage.DOCUMENTED: "document",
    Stage.STORED: "store",
}


@dataclass(frozen=True)
class PipelineResult:
    invoice_id: str
    document: StoredDocument
    totals: InvoiceTotals
    stage: Stage
    elapsed: float

    @property
    def key(self) -> str:
        return self.document.key


def sqlite_snapshot_loader(db_path: Path) -> SnapshotLoader:
    """Snapshot loader reading from the SQLite database at db_path."""
    def _load(invoice_id: str) -> InvoiceSnapshot:
        with db.get_db(db_path) as conn:
            return db.load_invoice_snapshot(conn, invoice_id)
    return _load


class InvoicePipeline:
    def __init__(
        self,
        snapshot_loader: SnapshotLoader,
        templates: TemplateSet,
        renderer: DocumentRenderer,
        store: DocumentStore,
        on_timing: TimingHook | None = None,
    ):
        self.snapshot_loader = snapshot_loader
        self.templates = templates
        self.renderer = renderer
        self.store = store
        self.on_timing = on_timing

    def _emit(self, event: str, invoice_id: str, elapsed: float | None = None) -> None:
        if self.on_timing is not None:
            self.on_timing(event, invoice_id, elapsed)

    def run(self, invoice_id: str) -> PipelineResult:
        """Generate and store the PDF for one invoice."""
        started = time.monotonic()
        logger.info("Generating invoice PDF for %s", invoice_id)
        self._emit("started", invoice_id)

        reached = None
        target = Stage.LOADED
        try:
            snapshot = self.snapshot_loader(invoice_id)
            reached, target = Stage.LOADED, Stage.AGGREGATED

            totals = compute_invoice_totals(snapshot)
            reached, target = Stage.AGGREGATED, Stage.RENDERED

            rendered = render_invoice(build_invoice_model(snapshot, totals), self.templates)
            reached, target = Stage.RENDERED, Stage.DOCUMENTED

            pdf = self.renderer.render_document(rendered.body, rendered.header, rendered.footer)
            reached, target = Stage.DOCUMENTED, Stage.STORED

            stored = upsert_document(self.store, document_key(invoice_id), pdf, PDF_CONTENT_TYPE)
        except Exception as e:
            component = STAGE_COMPONENTS[target]
            elapsed = time.monotonic() - started
            logger.error(
                "Invoice PDF for %s failed in %s after %.2fs: %s",
                invoice_id, component, elapsed, e,
            )
            self._emit("failed", invoice_id, elapsed)
            raise PipelineError(
                invoice_id, component, str(e), state=Stage.FAILED, reached=reached,
            ) from e

        elapsed = time.monotonic() - started
        logger.info(
            "Created invoice PDF for %s at %s (%d bytes, %.2fs)",
            invoice_id, stored.key, stored.size, elapsed,
        )
        self._emit("finished", invoice_id, elapsed)
        return PipelineResult(
            invoice_id=invoice_id,
            document=stored,
            totals=totals,
            stage=Stage.STORED,
            elapsed=elapsed,
        )


def generate_invoice_document(
    config: Config,
    invoice_id: str,
    on_timing: TimingHook | None = None,
) -> PipelineResult:
    """Run the pipeline with collaborators built from config.

    The store is opened for this invocation and closed afterwards.
    """
    templates = load_templates(config.templates)
    renderer = make_renderer(config.renderer)
    with make_store(config.storage) as store:
        pipeline = InvoicePipeline(
            snapshot_loader=sqlite_snapshot_loader(config.db_path),
            templates=templates,
            renderer=renderer,
            store=store,
            on_timing=on_timing,
        )
        return pipeline.run(invoice_id)
