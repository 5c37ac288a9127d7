"""JavaScript expressions evaluated in the page via Runtime.evaluate.

Kept in a separate module so page.py stays about protocol calls.
User-supplied strings are embedded with json.dumps, which yields a valid
JS string literal for any input.
"""

import json

OUTER_HTML_JS = "document.documentElement.outerHTML"


def selector_exists_js(selector: str) -> str:
    """JS that evaluates to true once *selector* matches an element."""
    return f"!!document.querySelector({json.dumps(selector)})"


def truthy_js(expression: str) -> str:
    """Wrap a predicate so it always evaluates to a plain boolean.

    Thrown errors count as false so a predicate can reference elements
    that don't exist yet.
    """
    return f"(() => {{ try {{ return !!({expression}); }} catch (e) {{ return false; }} }})()"
