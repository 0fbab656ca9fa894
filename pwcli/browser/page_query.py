"""Shared JavaScript helpers for resolving engine-native selectors in the page.

Selector grammar:
- plain CSS (`button.primary`), or explicitly `css=<expr>`
- XPath via `xpath=<expr>` (a bare expression starting with `//` or `(` is also XPath)
- parts joined by ` >> ` match descendants of every match of the previous part

Matches are returned de-duplicated and in document order.
"""

from __future__ import annotations

import json

QUERY_JS = r"""
const __pwParsePart = (raw) => {
  const part = String(raw).trim();
  if (part.startsWith('xpath=')) return { kind: 'xpath', expr: part.slice(6) };
  if (part.startsWith('css=')) return { kind: 'css', expr: part.slice(4) };
  if (part.startsWith('//') || part.startsWith('(')) return { kind: 'xpath', expr: part };
  return { kind: 'css', expr: part };
};

const __pwQueryPart = (root, part) => {
  if (part.kind === 'css') return Array.from(root.querySelectorAll(part.expr));
  let expr = part.expr;
  // Absolute paths are relative to the scoping element when chained.
  if (root !== document && expr.startsWith('/')) expr = '.' + expr;
  const snap = document.evaluate(expr, root, null, XPathResult.ORDERED_NODE_SNAPSHOT_TYPE, null);
  const out = [];
  for (let i = 0; i < snap.snapshotLength; i += 1) {
    const node = snap.snapshotItem(i);
    if (node && node.nodeType === Node.ELEMENT_NODE) out.push(node);
  }
  return out;
};

const __pwDocumentOrder = (a, b) => {
  if (a === b) return 0;
  return a.compareDocumentPosition(b) & Node.DOCUMENT_POSITION_FOLLOWING ? -1 : 1;
};

const __pwQueryAll = (selector) => {
  const parts = String(selector).split(' >> ').map(__pwParsePart);
  let roots = [document];
  for (const part of parts) {
    if (!part.expr) throw new Error(`Empty selector part in ${selector}`);
    const seen = new Set();
    const next = [];
    for (const root of roots) {
      for (const el of __pwQueryPart(root, part)) {
        if (!seen.has(el)) {
          seen.add(el);
          next.push(el);
        }
      }
    }
    roots = next.sort(__pwDocumentOrder);
    if (!roots.length) break;
  }
  return roots;
};

const __pwCenter = (el) => {
  if (el.scrollIntoView) el.scrollIntoView({ block: 'center', inline: 'center' });
  const r = el.getBoundingClientRect();
  return { x: r.left + r.width / 2, y: r.top + r.height / 2, width: r.width, height: r.height };
};

const __pwSetValue = (el, nextValue) => {
  // Use the native setter when available (helps React/controlled inputs).
  try {
    const proto = Object.getPrototypeOf(el);
    const desc = proto ? Object.getOwnPropertyDescriptor(proto, 'value') : null;
    if (desc && typeof desc.set === 'function') {
      desc.set.call(el, String(nextValue));
      return;
    }
  } catch (_e) {}
  el.value = String(nextValue);
};
"""


def wrap(selector: str, body: str) -> str:
    """Build an expression that binds `els` to the matches of `selector` and runs `body`."""
    return f"""
    (() => {{
        {QUERY_JS}
        const selector = {json.dumps(selector)};
        const els = __pwQueryAll(selector);
        {body}
    }})()
    """


def count_js(selector: str) -> str:
    return wrap(selector, "return els.length;")


def center_js(selector: str) -> str:
    return wrap(selector, "return els.length ? __pwCenter(els[0]) : null;")


def focus_js(selector: str, *, clear: bool = False) -> str:
    body = """
        const el = els[0];
        if (!el) return false;
        if (el.scrollIntoView) el.scrollIntoView({ block: 'center', inline: 'center' });
        if (el.focus) el.focus();
    """
    if clear:
        body += """
        if ('value' in el) {
            __pwSetValue(el, '');
            el.dispatchEvent(new Event('input', { bubbles: true }));
        } else if (el.isContentEditable) {
            el.textContent = '';
        }
        """
    body += "return true;"
    return wrap(selector, body)


def select_option_js(selector: str, value: str) -> str:
    """Select an option of the first matching <select> by value, falling back to its label."""
    return wrap(
        selector,
        f"""
        const sel = els[0] || null;
        if (!sel) return {{ found: false }};
        if (String(sel.tagName || '').toLowerCase() !== 'select') throw new Error('Element is not a <select>');
        const desired = {json.dumps(value)};
        const opts = Array.from(sel.options);
        const opt = opts.find(o => o.value === desired)
            || opts.find(o => o.text === desired || o.textContent.trim() === desired);
        if (!opt) throw new Error(`Option not found: ${{desired}}`);
        __pwSetValue(sel, opt.value);
        sel.dispatchEvent(new Event('input', {{ bubbles: true }}));
        sel.dispatchEvent(new Event('change', {{ bubbles: true }}));
        return {{ found: true, value: sel.value }};
        """,
    )
