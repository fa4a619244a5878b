"""Release name resolution and validation.

Names are either given explicitly, generated from the bundle source path and
the current time, or produced by a name template. Templates are evaluated by a
sandboxed Jinja2 environment that only exposes a small set of helpers.
"""

import os
import re
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from jinja2 import TemplateSyntaxError, meta
from jinja2.exceptions import SecurityError, UndefinedError
from jinja2.sandbox import SandboxedEnvironment

from kubeship.utils.errors import ValidationError

MAX_NAME_LENGTH = 53

NAME_PATTERN = r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$'
_NAME_RE = re.compile(NAME_PATTERN)

TEMPLATE_NAME = 'name-template'


def validate_release_name(name: str) -> None:
    """Validate a release name.

    Args:
        name: Release name

    Raises:
        ValidationError: If the name is empty or malformed
    """
    if not name:
        raise ValidationError("no name provided")
    if len(name) > MAX_NAME_LENGTH or not _NAME_RE.match(name):
        raise ValidationError(
            f"invalid release name, must match regex {NAME_PATTERN} "
            f"and the length must not be longer than {MAX_NAME_LENGTH}"
        )


def is_valid_release_name(name: str) -> bool:
    """Check a release name without raising."""
    try:
        validate_release_name(name)
    except ValidationError:
        return False
    return True


def generate_name(source: Optional[str], now: Optional[float] = None) -> str:
    """Generate a release name from a bundle source path.

    The base is the last path element with everything from the first dot
    removed, so "./web.tar.gz" becomes "web".

    Args:
        source: Path or reference the bundle was loaded from
        now: Unix time override

    Returns:
        Name of the form <base>-<unix seconds>
    """
    base = os.path.basename(source or '')
    if '.' in base:
        base = base[:base.index('.')]
    if not base:
        base = 'bundle'
    stamp = int(now if now is not None else time.time())
    return f"{base}-{stamp}"


def _random_string(alphabet: str) -> Callable[[int], str]:
    def generate(count: int) -> str:
        return ''.join(secrets.choice(alphabet) for _ in range(int(count)))
    return generate


def _trunc(count: int, value: str) -> str:
    count = int(count)
    if count < 0:
        return value[count:]
    return value[:count]


def _date(fmt: str, when: Optional[datetime] = None) -> str:
    return (when or datetime.now(timezone.utc)).strftime(fmt)


NAME_TEMPLATE_FUNCTIONS: Dict[str, Callable] = {
    'randAlpha': _random_string(string.ascii_letters),
    'randNumeric': _random_string(string.digits),
    'randAlphaNum': _random_string(string.ascii_letters + string.digits),
    'lower': lambda value: str(value).lower(),
    'upper': lambda value: str(value).upper(),
    'trunc': _trunc,
    'now': lambda: datetime.now(timezone.utc),
    'date': _date,
}


def _environment() -> SandboxedEnvironment:
    env = SandboxedEnvironment(autoescape=False, keep_trailing_newline=False)
    env.globals.clear()
    env.globals.update(NAME_TEMPLATE_FUNCTIONS)
    return env


def template_name(name_template: str) -> str:
    """Evaluate a name template.

    Args:
        name_template: Template text, e.g. "web-{{ randNumeric(6) }}"

    Returns:
        Rendered name (not validated)

    Raises:
        ValidationError: On syntax errors or references to unknown functions
    """
    if not name_template:
        return ''

    env = _environment()
    try:
        parsed = env.parse(name_template)
    except TemplateSyntaxError as e:
        detail = e.message or 'syntax error'
        if 'end of template' in detail:
            detail = 'unclosed action'
        raise ValidationError(f"template: {TEMPLATE_NAME}:{e.lineno}: {detail}", cause=e)

    undefined = sorted(meta.find_undeclared_variables(parsed) - set(env.globals))
    if undefined:
        raise ValidationError(f'template: {TEMPLATE_NAME}: function "{undefined[0]}" not defined')

    try:
        return env.from_string(parsed).render()
    except (UndefinedError, SecurityError, TypeError, ValueError) as e:
        raise ValidationError(f"template: {TEMPLATE_NAME}: {e}", cause=e)


def resolve_release_name(
    name: Optional[str],
    source: Optional[str] = None,
    generate: bool = False,
    name_template: Optional[str] = None
) -> str:
    """Resolve the name of a release about to be installed.

    Args:
        name: Explicit release name
        source: Bundle source path, used for generated names
        generate: Generate a name from the source path
        name_template: Template producing the name

    Returns:
        Resolved release name

    Raises:
        ValidationError: If the name choices conflict or nothing was chosen
    """
    if name:
        if generate:
            raise ValidationError("cannot set generate-name and also specify a name")
        if name_template:
            raise ValidationError("cannot set name-template and also specify a name")
        return name

    if name_template:
        return template_name(name_template)

    if not generate:
        raise ValidationError("must either provide a name or specify generate-name")

    return generate_name(source)
