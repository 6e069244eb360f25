"""Handlebars rendering of the preview page served at /."""

from collections.abc import Callable
from typing import Any

import pybars

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PageError(Exception):
    """Raised when the page template fails to compile or render."""


PREVIEW_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>{{title}}</title>
  <style>
    body { font-family: Georgia, serif; max-width: 42rem; margin: 2rem auto; }
    .line { margin: 0 0 .8rem; }
    .tags { color: #888; font-size: .8rem; margin-left: .5rem; }
    .choice { display: block; margin: .3rem 0; cursor: pointer; }
    .error { color: #b00020; }
    .event { color: #555; font-family: monospace; }
    #toolbar { margin-bottom: 1rem; }
  </style>
</head>
<body>
  <h1>{{title}}</h1>
  <div id="toolbar">
    <button data-action="start">Restart</button>
    <button data-action="rewind">Rewind</button>
    <label><input type="checkbox" id="live"> Live update</label>
  </div>
  <div id="transcript"></div>
  <div id="choices"></div>
  <div id="errors"></div>
  <div id="events"></div>
  <script>
    const socket = new WebSocket("{{ws_url}}");
    const send = (command, payload) => socket.send(JSON.stringify({command, payload}));
    const act = (payload) => send("action", payload);
    socket.onopen = () => send("ready");
    document.querySelectorAll("[data-action]").forEach((b) =>
      b.addEventListener("click", () => act({type: b.dataset.action})));
    document.getElementById("live").addEventListener("change", (e) =>
      act({type: "toggle_live_update", enabled: e.target.checked}));
    const el = (tag, cls, text) => {
      const node = document.createElement(tag);
      node.className = cls;
      node.textContent = text;
      return node;
    };
    socket.onmessage = (msg) => {
      const {command, payload} = JSON.parse(msg.data);
      if (command !== "updateState") return;
      const s = payload.state;
      const transcript = document.getElementById("transcript");
      transcript.replaceChildren(...s.transcript.map((l) => {
        const p = el("p", "line", l.text);
        p.addEventListener("dblclick", () => send("jumpToLine", {text: l.text}));
        if (l.tags.length) p.appendChild(el("span", "tags", "# " + l.tags.join(" # ")));
        return p;
      }));
      document.getElementById("choices").replaceChildren(...s.choices.map((c) => {
        const a = el("a", "choice", c.text);
        a.addEventListener("click", () => act({type: "select_choice", index: c.index}));
        return a;
      }));
      document.getElementById("errors").replaceChildren(
        ...s.errors.map((e) => el("p", "error", e.message)));
      document.getElementById("events").replaceChildren(
        ...s.events.map((e) => el("p", "event", e.function_name + "(" + e.args.join(", ") + ")")));
      document.getElementById("live").checked = s.live_update;
      if (s.ended) transcript.appendChild(el("p", "line", "THE END"));
    };
  </script>
</body>
</html>
"""


def render_page(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PageError(f"Template error: {e}") from e


def render_preview_page(title: str, ws_url: str) -> str:
    return render_page(PREVIEW_TEMPLATE, {"title": title, "ws_url": ws_url})
