"""Render invoice markup to a paginated PDF.

Every backend implements `render_document(markup, header_markup,
footer_markup) -> bytes`. Each call owns its engine for exactly one document
and tears it down on every exit path. Launch failures and serialization
failures raise RenderFailureError; exceeded time bounds raise
RenderTimeoutError.
"""

import asyncio
import logging
import multiprocessing
import re

from patchright.async_api import Error as PlaywrightError
from patchright.async_api import TimeoutError as PlaywrightTimeoutError
from patchright.async_api import async_playwright

from .config import RendererConfig
from .errors import RenderFailureError, RenderTimeoutError

logger = logging.getLogger("hourbill.document")


class DocumentRenderer:
    """Interface for document backends."""

    def render_document(self, markup: str, header_markup: str, footer_markup: str) -> bytes:
        raise NotImplementedError


class ChromiumRenderer(DocumentRenderer):
    """Headless Chromium via Patchright: print media, header/footer on every page.

    The header and footer templates may use <span class="pageNumber"></span>
    and <span class="totalPages"></span>; Chromium fills them in per page.
    """

    def __init__(
        self,
        page_format: str = "A4",
        content_timeout: float = 30.0,
        pdf_timeout: float = 60.0,
        executable_path: str = "",
        launch_args: list[str] | None = None,
    ):
        self.page_format = page_format
        self.content_timeout = content_timeout
        self.pdf_timeout = pdf_timeout
        self.executable_path = executable_path
        self.launch_args = launch_args if launch_args is not None else [
            "--no-sandbox", "--disable-setuid-sandbox",
        ]

    def render_document(self, markup: str, header_markup: str, footer_markup: str) -> bytes:
        # Synchronous entry point; must not be called from inside a running event loop.
        return asyncio.run(self._render(markup, header_markup, footer_markup))

    async def _render(self, markup: str, header_markup: str, footer_markup: str) -> bytes:
        pw = None
        browser = None
        try:
            try:
                pw = await async_playwright().start()
                browser = await pw.chromium.launch(
                    headless=True,
                    args=self.launch_args,
                    executable_path=self.executable_path or None,
                )
            except PlaywrightError as e:
                raise RenderFailureError(f"Chromium launch failed: {e}") from e
            logger.debug("Chromium launched for one document")

            page = await browser.new_page()
            try:
                await page.set_content(markup, timeout=self.content_timeout * 1000)
            except PlaywrightTimeoutError as e:
                raise RenderTimeoutError(
                    f"Loading content exceeded {self.content_timeout:g}s",
                ) from e
            await page.emulate_media(media="print")

            try:
                pdf = await asyncio.wait_for(
                    page.pdf(
                        display_header_footer=True,
                        header_template=header_markup,
                        footer_template=footer_markup,
                        format=self.page_format,
                        print_background=True,
                    ),
                    timeout=self.pdf_timeout,
                )
            except asyncio.TimeoutError as e:
                raise RenderTimeoutError(
                    f"PDF serialization exceeded {self.pdf_timeout:g}s",
                ) from e
        except PlaywrightError as e:
            raise RenderFailureError(f"Chromium rendering failed: {e}") from e
        finally:
            await _shutdown(browser, pw)

        if not pdf:
            raise RenderFailureError("Chromium produced an empty document")
        logger.debug("Chromium produced %d bytes", len(pdf))
        return pdf


async def _shutdown(browser, pw) -> None:
    """Close the browser and stop the driver, whatever state they are in."""
    if browser is not None:
        try:
            await browser.close()
        except PlaywrightError as e:
            logger.warning("Chromium close failed: %s", e)
    if pw is not None:
        try:
            await pw.stop()
        except PlaywrightError as e:
            logger.warning("Patchright driver stop failed: %s", e)


# --- WeasyPrint ---

_RUNNING_CSS = """
<style>
    @page {
        size: %(page_format)s;
        @top-center { content: element(hb-header); width: 100%%; }
        @bottom-center { content: element(hb-footer); width: 100%%; }
    }
    .hb-header { position: running(hb-header); }
    .hb-footer { position: running(hb-footer); }
    .hb-header .pageNumber::before, .hb-footer .pageNumber::before { content: counter(page); }
    .hb-header .totalPages::before, .hb-footer .totalPages::before { content: counter(pages); }
</style>
"""

_HEAD_CLOSE = re.compile(r"</head\s*>", re.IGNORECASE)
_BODY_OPEN = re.compile(r"<body\b[^>]*>", re.IGNORECASE)


def inject_running_elements(markup: str, header_markup: str, footer_markup: str, page_format: str = "A4") -> str:
    """Place header/footer as CSS running elements so they repeat on every page.

    The Chromium-style pageNumber/totalPages spans map to CSS page counters.
    """
    css = _RUNNING_CSS % {"page_format": page_format}
    running = (
        f'<div class="hb-header">{header_markup}</div>'
        f'<div class="hb-footer">{footer_markup}</div>'
    )

    if _HEAD_CLOSE.search(markup):
        markup = _HEAD_CLOSE.sub(lambda m: css + m.group(0), markup, count=1)
    else:
        markup = css + markup

    if _BODY_OPEN.search(markup):
        return _BODY_OPEN.sub(lambda m: m.group(0) + running, markup, count=1)
    return running + markup


def _write_pdf(html: str) -> bytes:
    from weasyprint import HTML

    return HTML(string=html).write_pdf()


class WeasyPrintRenderer(DocumentRenderer):
    """WeasyPrint backend.

    With `isolate` set (the default) the conversion runs in a child process
    that is terminated when it exceeds `pdf_timeout`.
    """

    def __init__(self, page_format: str = "A4", pdf_timeout: float = 60.0, isolate: bool = True):
        self.page_format = page_format
        self.pdf_timeout = pdf_timeout
        self.isolate = isolate

    def render_document(self, markup: str, header_markup: str, footer_markup: str) -> bytes:
        html = inject_running_elements(markup, header_markup, footer_markup, self.page_format)
        if self.isolate:
            pdf = self._render_isolated(html)
        else:
            try:
                pdf = _write_pdf(html)
            except Exception as e:
                raise RenderFailureError(f"WeasyPrint rendering failed: {e}") from e
        if not pdf:
            raise RenderFailureError("WeasyPrint produced an empty document")
        logger.debug("WeasyPrint produced %d bytes", len(pdf))
        return pdf

    def _render_isolated(self, html: str) -> bytes:
        ctx = multiprocessing.get_context("spawn")
        # Pool.__exit__ terminates the worker process on every path.
        with ctx.Pool(processes=1) as pool:
            result = pool.apply_async(_write_pdf, (html,))
            try:
                return result.get(timeout=self.pdf_timeout)
            except multiprocessing.TimeoutError as e:
                raise RenderTimeoutError(
                    f"PDF serialization exceeded {self.pdf_timeout:g}s",
                ) from e
            except Exception as e:
                raise RenderFailureError(f"WeasyPrint rendering failed: {e}") from e


def make_renderer(config: RendererConfig) -> DocumentRenderer:
    """Build the configured document backend."""
    if config.engine == "chromium":
        return ChromiumRenderer(
            page_format=config.page_format,
            content_timeout=config.content_timeout,
            pdf_timeout=config.pdf_timeout,
            executable_path=config.executable_path,
            launch_args=config.launch_args,
        )
    if config.engine == "weasyprint":
        return WeasyPrintRenderer(page_format=config.page_format, pdf_timeout=config.pdf_timeout)
    raise ValueError(f"Unknown renderer engine: {config.engine}")
