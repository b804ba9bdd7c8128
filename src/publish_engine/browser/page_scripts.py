"""
In-page script templates.

Every probe or DOM action the engine runs inside a page is a named, versioned
template with a fixed JSON output schema (``defaults``). Templates are plain data so
they can be inspected and exercised without a browser; ``script_runner.run_json``
is the only place that evaluates them.

All templates share one prelude: a shadow-root worklist (``collectRoots``), a
visibility test and a bounded clickable-ancestor walk. Each template body is wrapped
into a single ``(params) => {...}`` function taking one JSON argument.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

_PRELUDE = r"""
  const maxShadowDepth = Number.isFinite(params.maxShadowDepth) ? params.maxShadowDepth : 4;
  const maxAncestorWalk = Number.isFinite(params.maxAncestorWalk) ? params.maxAncestorWalk : 6;

  function collectRoots(embeddedHosts) {
    const hosts = embeddedHosts || [];
    const queue = [{ root: document, shadowPath: "", depth: 0, embedPriority: 0 }];
    const out = [];
    while (queue.length) {
      const item = queue.shift();
      out.push(item);
      if (item.depth >= maxShadowDepth) continue;
      let all = [];
      try { all = item.root.querySelectorAll("*"); } catch (e) { all = []; }
      for (const el of all) {
        if (!el.shadowRoot) continue;
        let priority = item.embedPriority;
        for (const [sel, weight] of hosts) {
          try { if (el.matches(sel)) priority = Math.max(priority, weight); } catch (e) {}
        }
        queue.push({
          root: el.shadowRoot,
          shadowPath: item.shadowPath + "/" + el.tagName.toLowerCase(),
          depth: item.depth + 1,
          embedPriority: priority,
        });
      }
    }
    return out;
  }

  function queryAll(root, selector) {
    try { return Array.from(root.querySelectorAll(selector)); } catch (e) { return []; }
  }

  function isVisible(el) {
    if (!el || !el.getBoundingClientRect) return false;
    const rect = el.getBoundingClientRect();
    if (rect.width <= 0 || rect.height <= 0) return false;
    const vw = window.innerWidth || document.documentElement.clientWidth || 0;
    const vh = window.innerHeight || document.documentElement.clientHeight || 0;
    if (rect.right <= 0 || rect.bottom <= 0 || rect.left >= vw || rect.top >= vh) return false;
    const style = window.getComputedStyle(el);
    if (!style) return true;
    return style.display !== "none" && style.visibility !== "hidden" && style.visibility !== "collapse";
  }

  function isClickable(el) {
    if (!el || el.nodeType !== 1) return false;
    const tag = el.tagName.toLowerCase();
    if (["button", "a", "label", "input", "summary", "select"].includes(tag)) return true;
    const role = (el.getAttribute("role") || "").toLowerCase();
    if (["button", "link", "menuitem", "tab", "option"].includes(role)) return true;
    const tabindex = el.getAttribute("tabindex");
    if (tabindex !== null && Number(tabindex) >= 0) return true;
    if (typeof el.onclick === "function" || el.hasAttribute("onclick")) return true;
    try { return window.getComputedStyle(el).cursor === "pointer"; } catch (e) { return false; }
  }

  function parentAcrossShadow(el) {
    if (el.parentElement) return el.parentElement;
    const root = el.getRootNode && el.getRootNode();
    return root && root.host ? root.host : null;
  }

  function clickableAncestor(el) {
    let cur = el;
    for (let i = 0; cur && i <= maxAncestorWalk; i++) {
      if (isClickable(cur)) return cur;
      cur = parentAcrossShadow(cur);
    }
    return null;
  }

  function rootText(item) {
    if (item.root === document) return (document.body && document.body.innerText) || "";
    return Array.from(item.root.children || [])
      .map((c) => c.innerText || c.textContent || "")
      .join("\n");
  }

  function firstMarker(text, markers) {
    for (const m of markers || []) {
      if (m && text.includes(m)) return m;
    }
    return "";
  }

  function ownText(el) {
    return ((el.innerText || el.textContent || "") + "").replace(/\s+/g, " ").trim();
  }

  function center(el) {
    const r = el.getBoundingClientRect();
    const vw = window.innerWidth || 0;
    const vh = window.innerHeight || 0;
    const x = Math.min(Math.max(r.left + r.width / 2, 1), Math.max(vw - 1, 1));
    const y = Math.min(Math.max(r.top + r.height / 2, 1), Math.max(vh - 1, 1));
    return { x, y, width: r.width, height: r.height };
  }

  function deepElementFromPoint(x, y) {
    let el = document.elementFromPoint(x, y);
    for (let guard = 0; el && el.shadowRoot && guard <= maxShadowDepth; guard++) {
      const inner = el.shadowRoot.elementFromPoint(x, y);
      if (!inner || inner === el) break;
      el = inner;
    }
    return el;
  }

  function firstVisibleMatch(roots, selectors) {
    for (const selector of selectors || []) {
      for (const item of roots) {
        for (const el of queryAll(item.root, selector)) {
          if (isVisible(el)) return { el, selector, item };
        }
      }
    }
    return null;
  }
"""


@dataclass(frozen=True)
class ScriptTemplate:
    name: str
    version: int
    body: str
    defaults: dict[str, Any] = field(default_factory=dict)

    @property
    def source(self) -> str:
        return "(params) => {\n  params = params || {};\n" + _PRELUDE + self.body + "\n}"

    @property
    def key(self) -> str:
        return f"{self.name}@v{self.version}"


PAGE_PROBE = ScriptTemplate(
    name="page-probe",
    version=1,
    body=r"""
  const text = (document.body && document.body.innerText) || "";
  return {
    url: location.href,
    title: document.title || "",
    readyState: document.readyState,
    visible: document.visibilityState === "visible",
    focused: document.hasFocus(),
    bodyTextLen: text.trim().length,
    excerpt: text.replace(/\s+/g, " ").trim().slice(0, 160),
  };
""",
    defaults={
        "url": "",
        "title": "",
        "readyState": "",
        "visible": False,
        "focused": False,
        "bodyTextLen": 0,
        "excerpt": "",
    },
)

READINESS_PROBE = ScriptTemplate(
    name="readiness-probe",
    version=2,
    body=r"""
  const roots = collectRoots([]);
  let fileInputCount = 0;
  let hiddenFileInputCount = 0;
  let surfaceMatchCount = 0;
  let interactive = 0;
  const seen = new Set();
  const texts = [];

  for (const item of roots) {
    texts.push(rootText(item));
    for (const el of queryAll(item.root, "input[type='file']")) {
      if (isVisible(el)) fileInputCount += 1;
      else hiddenFileInputCount += 1;
      if (!seen.has(el) && isVisible(el) && clickableAncestor(el)) {
        seen.add(el);
        interactive += 1;
      }
    }
    for (const selector of params.surfaceSelectors || []) {
      for (const el of queryAll(item.root, selector)) {
        surfaceMatchCount += 1;
        if (!seen.has(el) && isVisible(el) && clickableAncestor(el)) {
          seen.add(el);
          interactive += 1;
        }
      }
    }
  }

  const text = texts.join("\n");
  const blockedHit = firstMarker(text, params.blockedMarkers);
  const loginHit = blockedHit ? "" : firstMarker(text, params.loginMarkers);
  const initHit = blockedHit || loginHit ? "" : firstMarker(text, params.initMarkers);
  const surfaceHit = firstMarker(text, params.surfaceMarkers);

  return {
    title: document.title || "",
    url: location.href,
    bodyTextLen: text.trim().length,
    fileInputCount,
    hiddenFileInputCount,
    surfaceMatchCount,
    blockedHit,
    loginHit,
    initHit,
    surfaceHit,
    anchorHit: fileInputCount + hiddenFileInputCount + surfaceMatchCount > 0,
    interactiveCandidateCount: interactive,
    frameCount: document.querySelectorAll("iframe, frame").length,
    shadowRootCount: roots.length - 1,
  };
""",
    defaults={
        "title": "",
        "url": "",
        "bodyTextLen": 0,
        "fileInputCount": 0,
        "hiddenFileInputCount": 0,
        "surfaceMatchCount": 0,
        "blockedHit": "",
        "loginHit": "",
        "initHit": "",
        "surfaceHit": "",
        "anchorHit": False,
        "interactiveCandidateCount": 0,
        "frameCount": 0,
        "shadowRootCount": 0,
    },
)

SELECTOR_COUNT = ScriptTemplate(
    name="selector-count",
    version=1,
    body=r"""
  let count = 0;
  let visibleCount = 0;
  for (const item of collectRoots([])) {
    for (const el of queryAll(item.root, params.selector || "")) {
      count += 1;
      if (isVisible(el)) visibleCount += 1;
    }
  }
  return { count, visibleCount };
""",
    defaults={"count": 0, "visibleCount": 0},
)

UPLOAD_SIGNAL = ScriptTemplate(
    name="upload-signal",
    version=1,
    body=r"""
  const href = location.href;
  for (const pattern of params.urlPatterns || []) {
    if (pattern && href.includes(pattern)) return { signal: "url:" + pattern };
  }
  const roots = collectRoots([]);
  for (const item of roots) {
    for (const el of queryAll(item.root, "input[type='file']")) {
      if (el.files && el.files.length > 0) {
        return { signal: "file_input:" + (el.files[0].name || el.files.length) };
      }
    }
  }
  if (params.generic) return { signal: "" };

  for (const selector of params.progressSelectors || []) {
    for (const item of roots) {
      for (const el of queryAll(item.root, selector)) {
        if (!isVisible(el)) continue;
        const text = ownText(el) || el.getAttribute("aria-valuenow") || "";
        if (text) return { signal: "progress:" + text.slice(0, 40) };
      }
    }
  }
  const text = roots.map(rootText).join("\n");
  const uploading = firstMarker(text, params.uploadingMarkers);
  if (uploading) return { signal: "uploading:" + uploading };
  const replace = firstMarker(text, params.replaceMarkers);
  if (replace) return { signal: "replace:" + replace };
  return { signal: "" };
""",
    defaults={"signal": ""},
)

GEOMETRY_SCAN = ScriptTemplate(
    name="geometry-scan",
    version=3,
    body=r"""
  const hosts = params.embeddedHosts || [];
  const roots = collectRoots(hosts);
  const markers = params.textMarkers || [];
  const classHints = params.classHints || [];
  const maxElements = params.maxElements || 1500;
  const elements = [];
  let scanned = 0;

  for (const item of roots) {
    for (const el of queryAll(item.root, "*")) {
      if (scanned >= maxElements) break;
      scanned += 1;
      if (!isVisible(el)) continue;
      const text = ownText(el).slice(0, 120);
      const aria = ((el.getAttribute("aria-label") || "") + " " + (el.getAttribute("title") || "")).trim();
      const className = (typeof el.className === "string" ? el.className : "").slice(0, 160);
      const style = window.getComputedStyle(el);
      const dashed = !!style && style.borderStyle.includes("dashed");
      const lowerClass = className.toLowerCase();
      const hinted = classHints.some((h) => lowerClass.includes(h));
      const textHit = text.length <= 80 && markers.some((m) => text.includes(m));
      if (!textHit && !dashed && !aria && !hinted) continue;

      let embedPriority = item.embedPriority;
      for (const [sel, weight] of hosts) {
        try { if (el.closest(sel)) embedPriority = Math.max(embedPriority, weight); } catch (e) {}
      }
      const c = center(el);
      elements.push({
        x: c.x,
        y: c.y,
        width: c.width,
        height: c.height,
        text,
        aria,
        className,
        dashed,
        embedPriority,
        tag: el.tagName.toLowerCase(),
        domContext: item.shadowPath || "document",
      });
    }
  }
  return {
    viewport: { width: window.innerWidth || 0, height: window.innerHeight || 0 },
    elements,
    scanned,
  };
""",
    defaults={"viewport": {"width": 0, "height": 0}, "elements": [], "scanned": 0},
)

CLICK_SCAN = ScriptTemplate(
    name="click-scan",
    version=2,
    body=r"""
  const roots = collectRoots([]);
  const mode = params.mode || "selector";

  function hit(el, marker) {
    const target = clickableAncestor(el) || el;
    const c = center(target);
    return { found: true, x: c.x, y: c.y, marker, tag: target.tagName.toLowerCase() };
  }

  if (mode === "selector") {
    const match = firstVisibleMatch(roots, params.selectors);
    if (match) return hit(match.el, match.selector);
  } else if (mode === "text") {
    for (const marker of params.markers || []) {
      let best = null;
      for (const item of roots) {
        for (const el of queryAll(item.root, "*")) {
          const text = ownText(el);
          if (!text.includes(marker) || text.length > marker.length + 40) continue;
          if (!isVisible(el)) continue;
          if (!best || text.length < ownText(best).length) best = el;
        }
      }
      if (best) return hit(best, marker);
    }
  } else if (mode === "hotspot") {
    const hints = params.hotspotHints || [];
    for (const item of roots) {
      for (const el of queryAll(item.root, "*")) {
        const attrs = [
          typeof el.className === "string" ? el.className : "",
          el.id || "",
          el.getAttribute("data-e2e") || "",
          el.getAttribute("data-testid") || "",
        ].join(" ").toLowerCase();
        const hint = hints.find((h) => attrs.includes(h));
        if (!hint || !isVisible(el) || !clickableAncestor(el)) continue;
        return hit(el, "hotspot:" + hint);
      }
    }
  }
  return { found: false, x: 0, y: 0, marker: "", tag: "" };
""",
    defaults={"found": False, "x": 0, "y": 0, "marker": "", "tag": ""},
)

POINTER_CLICK = ScriptTemplate(
    name="pointer-click",
    version=1,
    body=r"""
  const x = params.x;
  const y = params.y;
  const el = deepElementFromPoint(x, y);
  if (!el) return { clicked: false, tag: "" };
  const target = clickableAncestor(el) || el;
  const opts = { bubbles: true, cancelable: true, composed: true, clientX: x, clientY: y, button: 0 };
  try {
    target.dispatchEvent(new PointerEvent("pointerdown", opts));
    target.dispatchEvent(new MouseEvent("mousedown", opts));
    target.dispatchEvent(new PointerEvent("pointerup", opts));
    target.dispatchEvent(new MouseEvent("mouseup", opts));
  } catch (e) {}
  target.click();
  return { clicked: true, tag: target.tagName.toLowerCase() };
""",
    defaults={"clicked": False, "tag": ""},
)

CLICK_FILE_INPUT = ScriptTemplate(
    name="click-file-input",
    version=1,
    body=r"""
  for (const item of collectRoots([])) {
    const el = queryAll(item.root, params.selector || "")[0];
    if (el) {
      el.click();
      return { clicked: true };
    }
  }
  return { clicked: false };
""",
    defaults={"clicked": False},
)

FILE_INPUT_EVENTS = ScriptTemplate(
    name="file-input-events",
    version=1,
    body=r"""
  let dispatched = 0;
  for (const item of collectRoots([])) {
    for (const el of queryAll(item.root, params.selector || "")) {
      el.dispatchEvent(new Event("input", { bubbles: true, composed: true }));
      el.dispatchEvent(new Event("change", { bubbles: true, composed: true }));
      dispatched += 1;
    }
  }
  return { dispatched };
""",
    defaults={"dispatched": 0},
)

DROP_ZONE_LOCATE = ScriptTemplate(
    name="drop-zone-locate",
    version=1,
    body=r"""
  const match = firstVisibleMatch(collectRoots([]), params.selectors);
  if (!match) return { found: false, selector: "", x: 0, y: 0 };
  const c = center(match.el);
  return { found: true, selector: match.selector, x: c.x, y: c.y };
""",
    defaults={"found": False, "selector": "", "x": 0, "y": 0},
)

DRAG_DROP = ScriptTemplate(
    name="drag-drop",
    version=1,
    body=r"""
  const target = deepElementFromPoint(params.x, params.y);
  if (!target) return { dispatched: false, tag: "" };
  const bin = Uint8Array.from(atob(params.b64 || ""), (c) => c.charCodeAt(0));
  const file = new File([bin], params.name || "upload", { type: params.mime || "application/octet-stream" });
  const dt = new DataTransfer();
  dt.items.add(file);
  const opts = { bubbles: true, cancelable: true, composed: true, clientX: params.x, clientY: params.y, dataTransfer: dt };
  for (const type of ["dragenter", "dragover", "drop"]) {
    target.dispatchEvent(new DragEvent(type, opts));
  }
  return { dispatched: true, tag: target.tagName.toLowerCase() };
""",
    defaults={"dispatched": False, "tag": ""},
)

FILL_INPUT = ScriptTemplate(
    name="fill-input",
    version=1,
    body=r"""
  const match = firstVisibleMatch(collectRoots([]), params.selectors);
  if (!match) return { marker: "" };
  const el = match.el;
  const proto = el.tagName === "TEXTAREA" ? HTMLTextAreaElement.prototype : HTMLInputElement.prototype;
  const setter = Object.getOwnPropertyDescriptor(proto, "value");
  el.focus();
  if (setter && setter.set) setter.set.call(el, params.value || "");
  else el.value = params.value || "";
  el.dispatchEvent(new Event("input", { bubbles: true, composed: true }));
  el.dispatchEvent(new Event("change", { bubbles: true, composed: true }));
  return { marker: "input:" + match.selector };
""",
    defaults={"marker": ""},
)

FILL_EDITABLE = ScriptTemplate(
    name="fill-editable",
    version=1,
    body=r"""
  const candidates = [];
  for (const item of collectRoots([])) {
    for (const el of queryAll(item.root, params.selector || "[contenteditable='true']")) {
      if (isVisible(el)) candidates.push(el);
    }
  }
  const el = candidates[params.index || 0];
  if (!el) return { filled: false };
  el.focus();
  const sel = window.getSelection();
  const range = document.createRange();
  range.selectNodeContents(el);
  sel.removeAllRanges();
  sel.addRange(range);
  if (!document.execCommand("insertText", false, params.value || "")) {
    el.textContent = params.value || "";
  }
  el.dispatchEvent(new Event("input", { bubbles: true, composed: true }));
  return { filled: true };
""",
    defaults={"filled": False},
)

FOCUS_FIELD = ScriptTemplate(
    name="focus-field",
    version=1,
    body=r"""
  const match = firstVisibleMatch(collectRoots([]), params.selectors);
  if (!match) return { focused: false, selector: "" };
  match.el.focus();
  return { focused: document.activeElement === match.el || !!match.el.shadowRoot, selector: match.selector };
""",
    defaults={"focused": False, "selector": ""},
)

LOCATION_REPLACE = ScriptTemplate(
    name="location-replace",
    version=1,
    body=r"""
  location.replace(params.url);
  return { ok: true };
""",
    defaults={"ok": False},
)

TEMPLATES: dict[str, ScriptTemplate] = {
    t.name: t
    for t in (
        PAGE_PROBE,
        READINESS_PROBE,
        SELECTOR_COUNT,
        UPLOAD_SIGNAL,
        GEOMETRY_SCAN,
        CLICK_SCAN,
        POINTER_CLICK,
        CLICK_FILE_INPUT,
        FILE_INPUT_EVENTS,
        DROP_ZONE_LOCATE,
        DRAG_DROP,
        FILL_INPUT,
        FILL_EDITABLE,
        FOCUS_FIELD,
        LOCATION_REPLACE,
    )
}
