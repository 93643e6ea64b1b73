"""Tests for the mimic formula interpreter."""

import pytest
from lxml import etree

from collada_kinematics.errors import UnsupportedShape
from collada_kinematics.kinematics.mimic import formula_maths, parse_formula, parse_formula_math

MATHML = 'xmlns="http://www.w3.org/1998/Math/MathML"'


def _math(body):
    return etree.fromstring(f"<math {MATHML}>{body}</math>")


def test_linear_formula_roundtrip():
    """2.0 * x + 0.5 is read back exactly."""
    math = _math("""
<apply><plus/>
  <apply><times/><cn>2.0</cn><csymbol encoding="COLLADA">kmodel0/j0</csymbol></apply>
  <cn>0.5</cn>
</apply>""")
    assert parse_formula_math(math) == ("kmodel0/j0", 2.0, 0.5)


def test_operand_order_is_free():
    """The constant and the product may come in either order."""
    math = _math("""
<apply><plus/>
  <cn>-1.5</cn>
  <apply><times/><csymbol encoding="COLLADA">kmodel0/j0</csymbol><cn>3</cn></apply>
</apply>""")
    assert parse_formula_math(math) == ("kmodel0/j0", 3.0, -1.5)


def test_symbol_plus_offset():
    """x + b has unit multiplier."""
    math = _math('<apply><plus/><csymbol encoding="COLLADA">j</csymbol><cn>0.25</cn></apply>')
    assert parse_formula_math(math) == ("j", 1.0, 0.25)


def test_bare_symbol():
    """A bare csymbol is the identity relation."""
    assert parse_formula_math(_math('<csymbol encoding="COLLADA">j</csymbol>')) == ("j", 1.0, 0.0)


def test_unary_minus_keeps_zero_offset():
    """-x gives multiplier -1; the offset is left at zero."""
    math = _math('<apply><minus/><csymbol encoding="COLLADA">j</csymbol></apply>')
    symbol, multiplier, offset = parse_formula_math(math)
    assert (symbol, multiplier) == ("j", -1.0)
    # documents that rely on a nonzero offset for -x are not handled
    assert offset == 0.0


@pytest.mark.parametrize("body", [
    "<apply><sin/><ci>x</ci></apply>",
    '<apply><plus/><csymbol encoding="COLLADA">j</csymbol></apply>',
    '<apply><plus/><csymbol encoding="MathML">j</csymbol><cn>1</cn></apply>',
    '<apply><plus/><csymbol encoding="COLLADA">j</csymbol><cn>abc</cn></apply>',
    "",
])
def test_unknown_shapes_raise(body):
    """Anything outside the linear forms is rejected."""
    with pytest.raises(UnsupportedShape):
        parse_formula_math(_math(body))


def _formula(body):
    formula = etree.fromstring(f'<formula sid="f">{body}</formula>')
    for element in formula.iter():
        element.tag = etree.QName(element).localname
    return formula


def test_openrave_position_comes_first():
    """The OpenRAVE position equation wins over technique_common."""
    formula = _formula(f"""
  <technique_common><math {MATHML}><csymbol encoding="COLLADA">common</csymbol></math></technique_common>
  <technique profile="OpenRAVE">
    <equation type="first_partial" target="x"><math {MATHML}><cn>1</cn></math></equation>
    <equation type="position"><math {MATHML}><csymbol encoding="COLLADA">openrave</csymbol></math></equation>
  </technique>""")
    assert len(formula_maths(formula)) == 2
    assert parse_formula(formula) == ("openrave", 1.0, 0.0)


def test_unparsable_equation_falls_back_to_common():
    """A position equation outside the linear forms gives way to technique_common."""
    formula = _formula(f"""
  <technique_common>
    <math {MATHML}><apply><plus/><csymbol encoding="COLLADA">common</csymbol><cn>0.25</cn></apply></math>
  </technique_common>
  <technique profile="OpenRAVE">
    <equation type="position"><math {MATHML}><apply><sin/><ci>x</ci></apply></math></equation>
  </technique>""")
    assert parse_formula(formula) == ("common", 1.0, 0.25)


def test_no_parsable_math_raises():
    """When every candidate is unsupported the last error propagates."""
    formula = _formula(f"<technique_common><math {MATHML}><apply><cos/><ci>x</ci></apply></math></technique_common>")
    with pytest.raises(UnsupportedShape):
        parse_formula(formula)


def test_formula_without_technique():
    """A formula with neither technique has no math."""
    assert formula_maths(etree.fromstring("<formula/>")) == []
    assert parse_formula(etree.fromstring("<formula/>")) is None
