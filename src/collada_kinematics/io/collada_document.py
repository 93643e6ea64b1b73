"""Read-only view over a parsed COLLADA document.

The document is held as an lxml tree with namespaces stripped, so every
lookup below works on plain local names. An id index is built once on load;
sids are resolved by breadth-first search, following `instance_*` urls and
`newparam` SIDREF indirections where the scene graph requires it.
"""

import logging
from collections import deque
from pathlib import Path
from typing import Iterator, List, Optional, Union

import jax
import jax.numpy as jnp
from lxml import etree

from collada_kinematics.config import ConversionOptions, DEFAULT_OPTIONS
from collada_kinematics.errors import MalformedDocument
from collada_kinematics.transforms import se3

console_logger = logging.getLogger(__name__)

Array = jax.Array
Element = etree._Element

COLLADA_NAMESPACE = "http://www.collada.org/2008/03/COLLADASchema"
TRANSFORM_TAGS = ("translate", "rotate", "matrix", "scale", "lookat", "skew")


def local_name(element: Element) -> str:
    """Tag of an element without namespace or prefix (`math:apply` -> `apply`)."""
    tag = element.tag
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1].rsplit(":", 1)[-1]


def parse_floats(text: Optional[str]) -> List[float]:
    """Whitespace separated floats of a list element."""
    return [float(v) for v in (text or "").split()]


def parse_ints(text: Optional[str]) -> List[int]:
    """Whitespace separated integers of a list element."""
    return [int(v) for v in (text or "").split()]


def _strip_namespaces(root: Element) -> None:
    for element in root.iter():
        if isinstance(element.tag, str):
            element.tag = local_name(element)
    etree.cleanup_namespaces(root)


class ColladaDocument:
    """Parsed COLLADA document with id and sid resolution.

    Attributes:
        root: The `COLLADA` root element.
        options: Conversion options; `max_sidref_hops` bounds SIDREF chains.
    """

    def __init__(self, root: Element, options: Optional[ConversionOptions] = None):
        _strip_namespaces(root)
        if local_name(root) != "COLLADA":
            raise MalformedDocument(f"Expected a COLLADA root element, found <{local_name(root)}>")
        self.root = root
        self.options = options or DEFAULT_OPTIONS
        self._ids = {}
        for element in root.iter(etree.Element):
            element_id = element.get("id")
            if element_id is not None and element_id not in self._ids:
                self._ids[element_id] = element

    @classmethod
    def parse(cls, source: Union[str, Path, bytes], options: Optional[ConversionOptions] = None) -> "ColladaDocument":
        """Load a document from a path or from XML text.

        Strings that start with `<` are treated as XML, anything else as a path.
        """
        parser = etree.XMLParser(remove_blank_text=True, remove_comments=True, remove_pis=True)
        try:
            if isinstance(source, bytes):
                root = etree.fromstring(source, parser)
            elif isinstance(source, str) and source.lstrip().startswith("<"):
                root = etree.fromstring(source.encode("utf-8"), parser)
            else:
                root = etree.parse(str(source), parser).getroot()
        except etree.XMLSyntaxError as e:
            raise MalformedDocument(f"Could not parse COLLADA document: {e}") from e
        return cls(root, options)

    @classmethod
    def from_element(cls, root: Element, options: Optional[ConversionOptions] = None) -> "ColladaDocument":
        """Wrap a copy of an in-memory tree, e.g. one built by the writer."""
        return cls.parse(etree.tostring(root), options)

    # ------------------------------------------------------------------
    # lookup

    def get_by_id(self, element_id: str) -> Optional[Element]:
        return self._ids.get(element_id)

    def resolve_url(self, url: Optional[str]) -> Optional[Element]:
        """Element addressed by a `#id` url, or None."""
        if not url:
            return None
        if not url.startswith("#"):
            console_logger.warning(f"external reference {url} is not supported")
            return None
        return self._ids.get(url[1:])

    def url_target(self, element: Optional[Element]) -> Optional[Element]:
        """Target of an element's `url` attribute."""
        if element is None:
            return None
        return self.resolve_url(element.get("url"))

    def resolve_sidref(self, ref: Optional[str], start: Optional[Element]) -> Optional[Element]:
        """Resolve a `/` separated sid path relative to `start`.

        The first token is `.`, an id, or a sid searched in the subtree of
        `start` and then in the subtrees of its ancestors. Later tokens are
        sids searched below the current element. A final `newparam` holding a
        SIDREF is followed, at most `max_sidref_hops` times.

        Returns:
            The addressed element, or None when any step fails.
        """
        element = self._resolve_sid_path(ref, start)
        hops = 0
        while element is not None and local_name(element) == "newparam":
            sidref = element.find("SIDREF")
            if sidref is None or not (sidref.text or "").strip():
                break
            if hops >= self.options.max_sidref_hops:
                console_logger.warning(f"too many SIDREF indirections resolving {ref}")
                return None
            element = self._resolve_sid_path(sidref.text.strip(), element)
            hops += 1
        return element

    def _resolve_sid_path(self, ref: Optional[str], start: Optional[Element]) -> Optional[Element]:
        if not ref or start is None:
            return None
        tokens = [token for token in ref.strip().split("/") if token]
        if not tokens:
            return None

        first = tokens[0]
        if first == ".":
            current = start
        else:
            current = self._ids.get(first)
            if current is None:
                current = self._find_sid_upwards(first, start)
        for token in tokens[1:]:
            if current is None:
                return None
            current = self._find_sid_below(token, current)
        return current

    def _find_sid_upwards(self, sid: str, start: Element) -> Optional[Element]:
        scope = start
        while scope is not None:
            found = _bfs_sid(sid, scope, include_self=True)
            if found is not None:
                return found
            scope = scope.getparent()
        return None

    def _find_sid_below(self, sid: str, element: Element) -> Optional[Element]:
        found = _bfs_sid(sid, element, include_self=False)
        if found is not None:
            return found
        if local_name(element).startswith("instance_"):
            target = self.url_target(element)
            if target is not None:
                return _bfs_sid(sid, target, include_self=False)
        return None

    # ------------------------------------------------------------------
    # units and transforms

    def unit_scale(self, element: Element) -> float:
        """Meters per unit of the nearest enclosing `asset/unit`, default 1.0."""
        current = element
        while current is not None:
            unit = current.find("asset/unit")
            if unit is not None and unit.get("meter"):
                return float(unit.get("meter"))
            current = current.getparent()
        return 1.0

    def transform_of(self, element: Element) -> Array:
        """4x4 transform of one transform element; identity for anything else."""
        kind = local_name(element)
        values = parse_floats(element.text)
        if kind == "rotate":
            return se3.from_axis_angle(values[:3], jnp.deg2rad(values[3]))
        if kind == "translate":
            return se3.from_translation(jnp.asarray(values[:3]) * self.unit_scale(element))
        if kind == "matrix":
            T = se3.from_matrix_rows(values)
            return T.at[:3, 3].multiply(self.unit_scale(element))
        if kind == "scale":
            return se3.from_scale(values[:3])
        if kind in ("lookat", "skew"):
            console_logger.error(f"{kind} transform not implemented")
        return se3.identity()

    def full_transform(self, element: Optional[Element]) -> Array:
        """Composition of the transform children of an element, in order."""
        T = se3.identity()
        if element is None:
            return T
        for child in element.iterchildren(*TRANSFORM_TAGS):
            T = se3.multiply(T, self.transform_of(child))
        return T

    def node_parent_transform(self, element: Element) -> Array:
        """Product of the transforms of the chain of `node` ancestors."""
        chain = []
        parent = element.getparent()
        while parent is not None and local_name(parent) == "node":
            chain.append(parent)
            parent = parent.getparent()
        T = se3.identity()
        for node in reversed(chain):
            T = se3.multiply(T, self.full_transform(node))
        return T

    # ------------------------------------------------------------------
    # traversal helpers

    def iter_instances(self, element: Element, tag: str) -> Iterator[Element]:
        """Targets of every `tag` child url of `element` that resolve."""
        for instance in element.iterchildren(tag):
            target = self.url_target(instance)
            if target is None:
                console_logger.warning(f"failed to resolve <{tag} url=\"{instance.get('url')}\">")
                continue
            yield target


def _bfs_sid(sid: str, root: Element, include_self: bool) -> Optional[Element]:
    if include_self and root.get("sid") == sid:
        return root
    queue = deque(root.iterchildren(etree.Element))
    while queue:
        element = queue.popleft()
        if element.get("sid") == sid:
            return element
        queue.extend(element.iterchildren(etree.Element))
    return None


def find_ancestor(element: Optional[Element], tag: str) -> Optional[Element]:
    """Nearest ancestor with the given local name."""
    if element is None:
        return None
    parent = element.getparent()
    while parent is not None:
        if local_name(parent) == tag:
            return parent
        parent = parent.getparent()
    return None
