"""
HTML pages served by the redirect endpoint.

- `interstitial_page`: the cloaked-link page. Redirects from script after a
  short delay, carries no-referrer / no-index hints, falls back to a meta
  refresh for clients without script, and shows a manual link.
- `error_page`: the 404 / 410 / 500 pages.

The destination is HTML-escaped wherever it appears in markup and
JSON-encoded (with "</" broken up) inside the script block.
"""

import html
import json
from string import Template

_INTERSTITIAL = Template("""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Redirecting...</title>
  <meta name="robots" content="noindex, nofollow">
  <meta name="referrer" content="no-referrer">
  <noscript><meta http-equiv="refresh" content="0;url=$href"></noscript>
</head>
<body>
  <p>Redirecting you now. <a href="$href" rel="noreferrer noopener">Continue</a> if nothing happens.</p>
  <script>
    setTimeout(function () { window.location.replace($target); }, $delay);
  </script>
</body>
</html>
""")

_ERROR = Template("""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>$title</title>
  <meta name="robots" content="noindex, nofollow">
</head>
<body>
  <h1>$title</h1>
  <p>$message</p>
</body>
</html>
""")

ERROR_PAGES = {
    "not_found": ("Link not found", "The link you followed does not exist."),
    "inactive": ("Link disabled", "This link has been disabled."),
    "expired": ("Link expired", "This link has expired."),
    "error": ("Something went wrong", "Please try again later."),
}


def _script_string(value: str) -> str:
    return json.dumps(value).replace("</", "<\\/")


def interstitial_page(destination: str, delay_ms: int = 1500) -> str:
    return _INTERSTITIAL.substitute(
        href=html.escape(destination, quote=True),
        target=_script_string(destination),
        delay=max(0, int(delay_ms)),
    )


def error_page(kind: str) -> str:
    title, message = ERROR_PAGES.get(kind, ERROR_PAGES["error"])
    return _ERROR.substitute(title=html.escape(title), message=html.escape(message))
