import json
import logging
import re
from typing import Any, Mapping

from bs4 import BeautifulSoup, Tag
from bs4.dammit import EntitySubstitution
from bs4.formatter import HTMLFormatter

logger = logging.getLogger(__name__)

CONFIG_VARIABLE = "_app_config"

# Minimal escaping, and void elements written as "<link ...>" rather than "<link .../>"
_FORMATTER = HTMLFormatter(
    entity_substitution=EntitySubstitution.substitute_xml,
    void_element_close_prefix=None,
)

# Absolute ("https://x", "data:...") or root/protocol-relative ("/x", "//x") references
_NON_RELATIVE_RE = re.compile(r"^(?:[a-z][a-z0-9+.\-]*:|/)", re.IGNORECASE)

# Script sources that load the runtime configuration
_CONFIG_SRC_RE = re.compile(r"/config\.js$")

# (tag, attribute) pairs whose values are relocated to the asset host
_RELOCATED_ATTRS = (
    ("link", "href"),
    ("script", "src"),
)


def is_relative(reference: str) -> bool:
    """Return True when *reference* is a truly relative URL such as ``foo/bar.js``."""
    return not _NON_RELATIVE_RE.match(reference)


def config_script(config: Mapping[str, Any]) -> str:
    """Return the inline statement assigning *config* to the global config variable."""
    payload = json.dumps(config, separators=(",", ":"))
    # "</" inside a string literal would terminate the surrounding <script> element
    payload = payload.replace("</", "<\\/")
    return f"{CONFIG_VARIABLE} = {payload};"


def relocate(soup: BeautifulSoup, tag_name: str, attr: str, assets_url: str) -> int:
    """Prefix every relative *attr* of *tag_name* elements with *assets_url*."""
    count = 0
    for tag in soup.find_all(tag_name, attrs={attr: True}):
        value = tag.get(attr)
        if not isinstance(value, str) or not is_relative(value):
            continue
        tag[attr] = assets_url + value
        count += 1
    return count


def patch_config(soup: BeautifulSoup, config: Mapping[str, Any]) -> int:
    """Replace config-loader scripts with an inline config assignment."""
    statement = config_script(config)
    count = 0
    for script in soup.find_all("script", src=_CONFIG_SRC_RE):
        if not isinstance(script, Tag):
            continue
        del script["src"]
        script.string = statement
        count += 1
    return count


def transform(app_id: str, html: str, config: Mapping[str, Any], assets_url: str) -> str:
    """Relocate the asset references of *html* and inject *config* into it.

    Only ``link[href]`` / ``script[src]`` values and the config-loader scripts
    are touched; everything else in the document is serialised back as parsed.
    """
    soup = BeautifulSoup(html, "lxml")

    for tag_name, attr in _RELOCATED_ATTRS:
        relocated = relocate(soup, tag_name, attr, assets_url)
        logger.debug("Relocated %d %s elements for %s", relocated, tag_name, app_id)

    patched = patch_config(soup, config)
    logger.debug("Patched %d config scripts for %s", patched, app_id)

    return soup.decode(formatter=_FORMATTER)
