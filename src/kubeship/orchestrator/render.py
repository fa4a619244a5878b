"""Rendering of bundles into hooks and manifests.

The template language belongs to the renderer. TemplateRenderer is a small
Jinja2-based renderer; other renderers implement BundleRenderer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from jinja2 import StrictUndefined, TemplateError, TemplateSyntaxError
from jinja2.sandbox import SandboxedEnvironment

from kubeship.kube.manifest import Manifest, join_manifests, sort_manifests, write_manifests
from kubeship.release.models import Bundle, Hook
from kubeship.release.values import coalesce_values
from kubeship.utils.errors import KubeshipError, RenderError
from kubeship.utils.logging import get_logger

logger = get_logger(__name__)

NOTES_SUFFIX = "NOTES.txt"


@dataclass
class RenderResult:
    """Output of a renderer."""

    manifest: str
    notes: str = ""


@dataclass
class RenderedRelease:
    """Rendered output split into hooks and regular documents."""

    hooks: List[Hook] = field(default_factory=list)
    manifests: List[Manifest] = field(default_factory=list)
    manifest: str = ""
    notes: str = ""


class BundleRenderer(ABC):
    """Renders a bundle with values into manifest text."""

    @abstractmethod
    def render(self, bundle: Bundle, values: Dict[str, Any]) -> RenderResult:
        """Render a bundle.

        Args:
            bundle: Bundle to render
            values: Render values as built by to_render_values

        Returns:
            Manifest text with "# Source:" markers, and notes
        """
        pass


class TemplateRenderer(BundleRenderer):
    """Renders bundle templates with a sandboxed Jinja2 environment.

    Templates whose file name starts with "_" are skipped, and a template
    named NOTES.txt produces the release notes.
    """

    def __init__(self):
        self.env = SandboxedEnvironment(
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )

    def render(self, bundle: Bundle, values: Dict[str, Any]) -> RenderResult:
        parts = []
        notes = ""
        for path in sorted(bundle.templates):
            if Path(path).name.startswith("_"):
                continue
            source = f"{bundle.name}/{path}"
            try:
                text = self.env.from_string(bundle.templates[path]).render(**values)
            except TemplateSyntaxError as e:
                raise RenderError(f"parse error at ({source}:{e.lineno}): {e.message}", cause=e)
            except TemplateError as e:
                raise RenderError(f"template: {source}: {e}", cause=e)
            if path.endswith(NOTES_SUFFIX):
                notes = text
                continue
            parts.append(f"---\n# Source: {source}\n{text}\n")
        return RenderResult(manifest="".join(parts), notes=notes)


def to_render_values(
    bundle: Bundle,
    values: Optional[Dict[str, Any]],
    name: str,
    namespace: str,
    revision: int,
    is_install: bool,
    kube_version: Optional[str] = None
) -> Dict[str, Any]:
    """Build the top-level render values.

    Returns:
        Mapping with Values, Release, Bundle and Capabilities keys
    """
    return {
        "Values": coalesce_values(bundle.values, values),
        "Release": {
            "Name": name,
            "Namespace": namespace,
            "Revision": revision,
            "IsInstall": is_install,
            "IsUpgrade": not is_install,
            "Service": "Kubeship",
        },
        "Bundle": bundle.metadata.model_dump(),
        "Capabilities": {"KubeVersion": kube_version or ""},
    }


def render_release(
    renderer: BundleRenderer,
    bundle: Bundle,
    render_values: Dict[str, Any],
    hide_secret: bool = False,
    output_dir: Optional[Union[str, Path]] = None,
    release_name: Optional[str] = None
) -> RenderedRelease:
    """Render a bundle and split the output.

    Args:
        renderer: Renderer to use
        bundle: Bundle to render
        render_values: Values from to_render_values
        hide_secret: Replace Secret documents in the returned manifest
        output_dir: Also write every document below this directory
        release_name: Extra directory level below output_dir

    Raises:
        RenderError: If rendering or splitting fails; messages are kept verbatim
    """
    try:
        result = renderer.render(bundle, render_values)
    except RenderError:
        raise
    except KubeshipError as e:
        raise RenderError(e.message, cause=e)
    except Exception as e:
        raise RenderError(str(e), cause=e)

    try:
        hooks, manifests = sort_manifests(result.manifest)
    except KubeshipError as e:
        raise RenderError(e.message, cause=e)

    if output_dir is not None:
        written = write_manifests(output_dir, manifests, release_name, hooks)
        logger.info(f"Wrote {len(written)} manifest file(s) to {output_dir}")

    return RenderedRelease(
        hooks=hooks,
        manifests=manifests,
        manifest=join_manifests(manifests, hide_secret=hide_secret),
        notes=result.notes,
    )
