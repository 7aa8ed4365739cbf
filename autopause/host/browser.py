"""Playwright-backed host: runs the tracker against a live page.

An init script, injected before any page script runs, tags elements with ids
scoped to the current document and forwards media events, navigation events,
DOM-ready and mutation batches through a single exposed binding. The binding only queues;
``BrowserHost.run`` drains the queue and fires Python-side timers between
short waits, so every handler runs on one thread, one at a time.

A full reload replaces the document and everything the script set up in it.
The host notices the new document id on its ready event, drops element
handles from the old document, re-arms structure observers and reports
``dom-ready`` to navigation listeners.
"""

import heapq
import itertools
import json
import logging
import time
from collections import deque
from collections.abc import Callable
from typing import Any
from urllib.parse import urlparse

from autopause.config import Config, PageConfig, load_config
from autopause.host.base import (
    Cancellable,
    HostEnvironment,
    MediaElement,
    MediaHandler,
    NavigationHandler,
    Renderer,
    StructureHandler,
)
from autopause.models import MediaEvent, NavigationEvent, Rect, StructuralChange
from autopause.scheduler import ObservationScheduler
from autopause.tracker import SessionTracker

logger = logging.getLogger(__name__)

BINDING_NAME = "__autopauseEmit"

INIT_SCRIPT = """
(({ binding, mediaEvents, navigationEvents }) => {
  if (window.__autopause || window !== window.top) return;
  const doc = Math.random().toString(36).slice(2, 10);
  let seq = 0;
  const emit = (...args) => { try { window[binding](...args); } catch (_) {} };
  const idOf = (el) => {
    if (!el.dataset.autopauseId) el.dataset.autopauseId = `${doc}:${++seq}`;
    return el.dataset.autopauseId;
  };
  const byId = (id) => document.querySelector(`[data-autopause-id="${id}"]`);
  for (const type of mediaEvents) {
    document.addEventListener(type, (ev) => {
      if (ev.target instanceof HTMLVideoElement) emit('media', idOf(ev.target), type);
    }, true);
  }
  for (const type of navigationEvents) {
    window.addEventListener(type, () => emit('navigation', null, type), true);
  }
  const observers = {};
  window.__autopause = {
    document: doc,
    idOf,
    byId,
    observe(token, scopeSelectors, attributeFilter) {
      const root = document.querySelector(scopeSelectors.join(', ')) || document;
      const observer = new MutationObserver((mutations) => {
        const changes = mutations.map((m) => ({
          kind: m.type,
          attribute_name: m.attributeName,
          added: m.addedNodes ? m.addedNodes.length : 0,
          removed: m.removedNodes ? m.removedNodes.length : 0,
        }));
        emit('structure', token, JSON.stringify(changes));
      });
      observer.observe(root, { subtree: true, childList: true, attributes: true, attributeFilter });
      observers[token] = observer;
      return doc;
    },
    disconnect(token) {
      const observer = observers[token];
      if (observer) { observer.disconnect(); delete observers[token]; }
    },
  };
  const announce = () => emit('ready', doc, '');
  if (document.readyState === 'loading') {
    document.addEventListener('DOMContentLoaded', announce, { once: true });
  } else {
    announce();
  }
})
"""


class _Cancel(Cancellable):
    def __init__(self, fn: Callable[[], None]) -> None:
        self._fn: Callable[[], None] | None = fn

    def cancel(self) -> None:
        fn, self._fn = self._fn, None
        if fn is not None:
            fn()


class _Timer(Cancellable):
    def __init__(self, callback: Callable[[], None], interval: float | None) -> None:
        self.callback = callback
        self.interval = interval
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class BrowserMedia(MediaElement):
    """A <video> element addressed by its autopause id."""

    def __init__(self, host: "BrowserHost", element_id: str) -> None:
        self.host = host
        self.element_id = element_id
        self.listeners: dict[MediaEvent, list[MediaHandler]] = {}

    def _read(self, prop: str) -> float:
        value = self.host.page.evaluate(
            "([id, prop]) => { const el = window.__autopause.byId(id); return el ? el[prop] : null; }",
            [self.element_id, prop],
        )
        return float("nan") if value is None else float(value)

    @property
    def current_time(self) -> float:
        return self._read("currentTime")

    @property
    def duration(self) -> float:
        return self._read("duration")

    def add_listener(self, event: MediaEvent, handler: MediaHandler) -> None:
        self.listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event: MediaEvent, handler: MediaHandler) -> None:
        handlers = self.listeners.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def dispatch(self, event: MediaEvent) -> None:
        for handler in list(self.listeners.get(event, [])):
            try:
                handler()
            except Exception:
                logger.exception("%s handler error on %s", event.value, self)

    def pause(self) -> None:
        self.host.page.evaluate(
            "(id) => window.__autopause.byId(id).pause()", self.element_id,
        )

    def mute(self) -> None:
        self.host.page.evaluate(
            "(id) => { window.__autopause.byId(id).muted = true; }", self.element_id,
        )

    def __repr__(self) -> str:
        return f"BrowserMedia({self.element_id})"


class BrowserRenderer(Renderer):
    """A feed renderer element addressed by its autopause id."""

    def __init__(self, host: "BrowserHost", element_id: str) -> None:
        self.host = host
        self.element_id = element_id

    def bounding_rect(self) -> Rect:
        r = self.host.page.evaluate(
            """(id) => {
                const el = window.__autopause.byId(id);
                if (!el) return null;
                const r = el.getBoundingClientRect();
                return { top: r.top, bottom: r.bottom, left: r.left, right: r.right };
            }""",
            self.element_id,
        )
        if r is None:
            return Rect(top=0.0, bottom=0.0)
        return Rect(**r)

    def media(self) -> MediaElement | None:
        media_id = self.host.page.evaluate(
            """(id) => {
                const el = window.__autopause.byId(id);
                const vid = el ? el.querySelector('video') : null;
                return vid instanceof HTMLVideoElement ? window.__autopause.idOf(vid) : null;
            }""",
            self.element_id,
        )
        if media_id is None:
            return None
        return self.host.media_for(media_id)

    def __repr__(self) -> str:
        return f"BrowserRenderer({self.element_id})"


class BrowserHost(HostEnvironment):
    """HostEnvironment over a Playwright sync ``Page``."""

    def __init__(self, page: Any, page_config: PageConfig | None = None) -> None:
        self.page = page
        self.page_config = page_config or PageConfig()
        self.queue: deque[tuple[str, str | None, str]] = deque()
        self.timers: list[tuple[float, int, _Timer]] = []
        self._seq = itertools.count()
        self._media: dict[str, BrowserMedia] = {}
        self._renderers: dict[str, BrowserRenderer] = {}
        self._navigation_handlers: list[NavigationHandler] = []
        self._structure_handlers: dict[str, StructureHandler] = {}
        self._observed_filters: dict[str, list[str]] = {}
        self._observed_in: dict[str, str | None] = {}
        self.document_id: str | None = None
        self._ready_callbacks: list[Callable[[], None]] = []
        self._running = False

    def install(self) -> None:
        """Expose the event binding and register the init script. Call before navigating."""
        self.page.expose_function(BINDING_NAME, self._enqueue)
        args = {
            "binding": BINDING_NAME,
            "mediaEvents": [e.value for e in MediaEvent],
            "navigationEvents": self.page_config.navigation_events,
        }
        self.page.add_init_script(script=f"{INIT_SCRIPT}({json.dumps(args)});")

    # --- element registry ---

    def media_for(self, element_id: str) -> BrowserMedia:
        media = self._media.get(element_id)
        if media is None:
            media = self._media[element_id] = BrowserMedia(self, element_id)
        return media

    def renderer_for(self, element_id: str) -> BrowserRenderer:
        renderer = self._renderers.get(element_id)
        if renderer is None:
            renderer = self._renderers[element_id] = BrowserRenderer(self, element_id)
        return renderer

    # --- routing ---

    def current_route(self) -> str:
        return urlparse(self.page.url).path

    def is_tracked_route(self) -> bool:
        return self.current_route().startswith(self.page_config.route_prefix)

    def add_navigation_listener(self, handler: NavigationHandler) -> Cancellable:
        self._navigation_handlers.append(handler)
        return _Cancel(lambda: self._navigation_handlers.remove(handler))

    def on_ready(self, callback: Callable[[], None]) -> None:
        state = self.page.evaluate("document.readyState")
        if state in ("complete", "interactive"):
            callback()
        else:
            self._ready_callbacks.append(callback)

    # --- structure and geometry ---

    def observe_structure(
        self, handler: StructureHandler, attribute_filter: list[str],
    ) -> Cancellable:
        token = str(next(self._seq))
        self._structure_handlers[token] = handler
        self._observed_filters[token] = attribute_filter
        self._observe(token)

        def disconnect() -> None:
            self._structure_handlers.pop(token, None)
            self._observed_filters.pop(token, None)
            self._observed_in.pop(token, None)
            self.page.evaluate("(token) => window.__autopause.disconnect(token)", token)

        return _Cancel(disconnect)

    def _observe(self, token: str) -> None:
        self._observed_in[token] = self.page.evaluate(
            "([token, scope, filter]) => window.__autopause.observe(token, scope, filter)",
            [token, self.page_config.scope_selectors, self._observed_filters[token]],
        )

    def marked_active_renderer(self) -> Renderer | None:
        selector = self.page_config.renderer_selector
        attribute = self.page_config.active_attribute
        element_id = self.page.evaluate(
            """([selector, attribute]) => {
                const el = document.querySelector(`${selector}[${attribute}=""]`) ||
                           document.querySelector(`${selector}[${attribute}]`);
                return el ? window.__autopause.idOf(el) : null;
            }""",
            [selector, attribute],
        )
        if element_id is None:
            return None
        return self.renderer_for(element_id)

    def candidate_renderers(self) -> list[Renderer]:
        ids = self.page.evaluate(
            "(selector) => Array.from(document.querySelectorAll(selector)).map(window.__autopause.idOf)",
            self.page_config.renderer_selector,
        )
        return [self.renderer_for(element_id) for element_id in ids]

    def viewport_height(self) -> float:
        return float(self.page.evaluate("window.innerHeight"))

    # --- time ---

    def now(self) -> float:
        return time.monotonic()

    def _schedule(self, seconds: float, callback: Callable[[], None], repeat: bool) -> _Timer:
        if seconds <= 0:
            raise ValueError(f"timer period must be positive, got {seconds}")
        timer = _Timer(callback, seconds if repeat else None)
        heapq.heappush(self.timers, (self.now() + seconds, next(self._seq), timer))
        return timer

    def set_interval(self, seconds: float, callback: Callable[[], None]) -> Cancellable:
        return self._schedule(seconds, callback, repeat=True)

    def set_timeout(self, seconds: float, callback: Callable[[], None]) -> Cancellable:
        return self._schedule(seconds, callback, repeat=False)

    def fire_due_timers(self) -> None:
        now = self.now()
        while self.timers and self.timers[0][0] <= now:
            due, _, timer = heapq.heappop(self.timers)
            if timer.cancelled:
                continue
            if timer.interval is not None:
                # Re-arm from the due time; periods missed while blocked are skipped
                next_due = due + timer.interval
                if next_due <= now:
                    next_due = now + timer.interval
                heapq.heappush(self.timers, (next_due, next(self._seq), timer))
            timer.callback()

    # --- event pump ---

    def _enqueue(self, channel: str, target: str | None, payload: str) -> None:
        self.queue.append((channel, target, payload))

    def dispatch_pending(self) -> None:
        while self.queue:
            channel, target, payload = self.queue.popleft()
            if channel == "media":
                media = self._media.get(target)
                if media is not None:
                    media.dispatch(MediaEvent(payload))
            elif channel == "navigation":
                try:
                    event = NavigationEvent(payload)
                except ValueError:
                    logger.debug("Ignoring unknown navigation event %s", payload)
                    continue
                for handler in list(self._navigation_handlers):
                    handler(event)
            elif channel == "structure":
                handler = self._structure_handlers.get(target)
                if handler is not None:
                    handler([StructuralChange(**c) for c in json.loads(payload)])
            elif channel == "ready":
                self._on_document_ready(target)
            else:
                logger.debug("Ignoring unknown channel %s", channel)

    def _on_document_ready(self, document: str | None) -> None:
        replaced = (
            document is not None
            and self.document_id is not None
            and document != self.document_id
        )
        if document is not None:
            self.document_id = document
        if replaced:
            logger.info("Document replaced. document=%s", document)
            prefix = f"{document}:"
            self._media = {k: v for k, v in self._media.items() if k.startswith(prefix)}
            self._renderers = {k: v for k, v in self._renderers.items() if k.startswith(prefix)}
            for token in list(self._observed_filters):
                if self._observed_in.get(token) != document:
                    try:
                        self._observe(token)
                    except Exception:
                        logger.exception("Could not re-arm structure observer %s", token)

        callbacks, self._ready_callbacks = self._ready_callbacks, []
        for callback in callbacks:
            callback()
        if replaced:
            for handler in list(self._navigation_handlers):
                handler(NavigationEvent.DOM_READY)

    def run(self, duration: float | None = None, tick_ms: int = 50) -> None:
        """Pump events and timers until stopped, the page closes or duration elapses."""
        deadline = None if duration is None else self.now() + duration
        self._running = True
        while self._running and not self.page.is_closed():
            self.dispatch_pending()
            self.fire_due_timers()
            if deadline is not None and self.now() >= deadline:
                break
            self.page.wait_for_timeout(tick_ms)

    def stop(self) -> None:
        self._running = False


def watch(
    url: str,
    config: Config | None = None,
    duration: float | None = None,
    headless: bool = False,
) -> None:
    """Open url in Chromium and enforce the configured limit until the page closes.

    Without an explicit config, settings come from ``config.yaml`` at the project root.
    """
    from playwright.sync_api import sync_playwright

    config = config or load_config()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("autopause").setLevel(logging.DEBUG if config.debug else logging.WARNING)

    with sync_playwright() as pw:
        browser = pw.chromium.launch(headless=headless)
        context = browser.new_context()
        page = context.new_page()

        host = BrowserHost(page, config.page)
        host.install()
        page.goto(url, wait_until="domcontentloaded")

        tracker = SessionTracker(host, config)
        scheduler = ObservationScheduler(host, tracker, config)
        scheduler.bootstrap()
        try:
            host.run(duration=duration)
        finally:
            if not page.is_closed():
                scheduler.shutdown()
            context.close()
            browser.close()
