"""Interpreter for the MathML subset used by COLLADA mimic formulas.

Only linear relations of one joint to another are understood:

    apply(plus, apply(times, cn a, csymbol x), cn b)   ->  a * x + b
    apply(plus, csymbol x, cn b)                       ->  x + b
    apply(minus, csymbol x)                            -> -x
    apply(csymbol x) or a bare csymbol                 ->  x

Anything else raises UnsupportedShape.
"""

import logging
from typing import List, Optional, Tuple

from lxml import etree

from collada_kinematics.errors import UnsupportedShape
from collada_kinematics.io.collada_document import local_name

console_logger = logging.getLogger(__name__)

Element = etree._Element


def _children(element: Element) -> List[Element]:
    return [child for child in element if isinstance(child.tag, str)]


def _is(element: Optional[Element], name: str) -> bool:
    return element is not None and local_name(element) == name


def _cn(element: Element) -> float:
    if not _is(element, "cn"):
        raise UnsupportedShape(f"expected <cn>, found <{local_name(element)}>")
    try:
        return float((element.text or "").strip())
    except ValueError:
        raise UnsupportedShape(f"invalid number in <cn>: {element.text!r}") from None


def _csymbol(element: Element) -> str:
    if not _is(element, "csymbol"):
        raise UnsupportedShape(f"expected <csymbol>, found <{local_name(element)}>")
    if element.get("encoding") != "COLLADA":
        raise UnsupportedShape(f"csymbol encoding must be COLLADA, found {element.get('encoding')!r}")
    symbol = (element.text or "").strip()
    if not symbol:
        raise UnsupportedShape("empty csymbol")
    return symbol


def _scaled_symbol(element: Element) -> Tuple[str, float]:
    """`csymbol x` or `apply(times, cn a, csymbol x)` in either operand order."""
    if _is(element, "csymbol"):
        return _csymbol(element), 1.0
    children = _children(element) if _is(element, "apply") else []
    if len(children) != 3 or not _is(children[0], "times"):
        raise UnsupportedShape("expected apply(times, cn, csymbol)")
    if _is(children[1], "csymbol"):
        return _csymbol(children[1]), _cn(children[2])
    return _csymbol(children[2]), _cn(children[1])


def parse_formula_math(math: Element) -> Tuple[str, float, float]:
    """Read a mimic relation from a `<math>` element.

    Args:
        math: The MathML `<math>` element of a formula.

    Returns:
        (symbol, multiplier, offset), where symbol is the COLLADA sid
        reference of the driving joint.

    Raises:
        UnsupportedShape: The expression is not one of the linear forms.
    """
    children = _children(math)
    if not children:
        raise UnsupportedShape("empty <math>")
    top = children[0]
    if _is(top, "csymbol"):
        return _csymbol(top), 1.0, 0.0
    if not _is(top, "apply"):
        raise UnsupportedShape(f"unsupported math element <{local_name(top)}>")

    operands = _children(top)
    if not operands:
        raise UnsupportedShape("empty <apply>")
    operator = operands[0]
    if _is(operator, "plus"):
        if len(operands) != 3:
            raise UnsupportedShape("plus takes exactly two operands")
        term, constant = operands[1], operands[2]
        if _is(term, "cn"):
            term, constant = constant, term
        symbol, multiplier = _scaled_symbol(term)
        return symbol, multiplier, _cn(constant)
    if _is(operator, "minus"):
        if len(operands) != 2:
            raise UnsupportedShape("only unary minus is supported")
        # offset of -x is left at zero
        return _csymbol(operands[1]), -1.0, 0.0
    if _is(operator, "csymbol"):
        return _csymbol(operator), 1.0, 0.0
    raise UnsupportedShape(f"unsupported operator <{local_name(operator)}>")


def formula_maths(formula: Element) -> List[Element]:
    """Candidate `<math>` elements of a formula: OpenRAVE position equations first, then technique_common."""
    candidates = []
    for technique in formula.iterfind("technique"):
        if technique.get("profile") != "OpenRAVE":
            continue
        for equation in technique.iterfind("equation"):
            if equation.get("type") == "position":
                candidates.extend(c for c in _children(equation) if _is(c, "math"))
    common = formula.find("technique_common")
    if common is not None:
        for child in _children(common):
            if _is(child, "math"):
                candidates.append(child)
            else:
                console_logger.warning(f"unsupported formula element: {local_name(child)}")
    return candidates


def parse_formula(formula: Element) -> Optional[Tuple[str, float, float]]:
    """Mimic relation of a formula, from the first candidate math that parses.

    Returns:
        (symbol, multiplier, offset), or None when the formula has no math.

    Raises:
        UnsupportedShape: No candidate is one of the linear forms.
    """
    error = None
    for math in formula_maths(formula):
        try:
            return parse_formula_math(math)
        except UnsupportedShape as e:
            console_logger.debug(f"formula {formula.get('sid')}: {e}, trying next math")
            error = e
    if error is not None:
        raise error
    return None
