"""``${name}`` template expansion and bundled template resources.

Templates support literal substitution only. Placeholders without a value
are left untouched so that new keys can be added to templates before the
code supplies them.
"""

from importlib import resources

CI_STAGE_TEMPLATE = "ci-stage-template.txt"
TESTS_POM_TEMPLATE = "tests-template-pom.xml"


def expand(template: str, values: dict) -> str:
    """Replace every ``${key}`` of ``values`` in ``template``.

    Args:
        template: Template text.
        values: Mapping from placeholder name (without ``${}``) to replacement.

    Returns:
        The expanded text; unknown placeholders are kept as-is.
    """
    result = template
    for key, value in values.items():
        result = result.replace("${" + key + "}", value)
    return result


def load_resource(name: str) -> str:
    """Read a template bundled in ``prodplan/resources``."""
    return resources.files("prodplan").joinpath("resources", name).read_text(encoding="utf-8")
