"""
Table-name inflection.

Pure string transforms used to derive table names from class names and back.
Rules are checked in order; the first matching rule wins.
"""
import re
from typing import List, Optional, Tuple

from ..config import RecordSettings

PLURALS: List[Tuple[str, str]] = [
    (r"(quiz)$", r"\1zes"),
    (r"^(oxen)$", r"\1"),
    (r"^(ox)$", r"\1en"),
    (r"^(m|l)ice$", r"\1ice"),
    (r"^(m|l)ouse$", r"\1ice"),
    (r"(matr|vert|ind)(?:ix|ex)$", r"\1ices"),
    (r"(x|ch|ss|sh)$", r"\1es"),
    (r"([^aeiouy]|qu)y$", r"\1ies"),
    (r"(hive)$", r"\1s"),
    (r"(?:([^f])fe|([lr])f)$", r"\1\2ves"),
    (r"sis$", "ses"),
    (r"([ti])a$", r"\1a"),
    (r"([ti])um$", r"\1a"),
    (r"(buffal|tomat)o$", r"\1oes"),
    (r"(bu)s$", r"\1ses"),
    (r"(alias|status)$", r"\1es"),
    (r"(octop|vir)i$", r"\1i"),
    (r"(octop|vir)us$", r"\1i"),
    (r"^(ax|test)is$", r"\1es"),
    (r"s$", "s"),
    (r"$", "s"),
]

SINGULARS: List[Tuple[str, str]] = [
    (r"(database)s$", r"\1"),
    (r"(quiz)zes$", r"\1"),
    (r"(matr)ices$", r"\1ix"),
    (r"(vert|ind)ices$", r"\1ex"),
    (r"^(ox)en", r"\1"),
    (r"(alias|status)(es)?$", r"\1"),
    (r"(octop|vir)(us|i)$", r"\1us"),
    (r"^(a)x[ie]s$", r"\1xis"),
    (r"(cris|test)(is|es)$", r"\1is"),
    (r"(shoe)s$", r"\1"),
    (r"(o)es$", r"\1"),
    (r"(bus)(es)?$", r"\1"),
    (r"^(m|l)ice$", r"\1ouse"),
    (r"(x|ch|ss|sh)es$", r"\1"),
    (r"(m)ovies$", r"\1ovie"),
    (r"(s)eries$", r"\1eries"),
    (r"([^aeiouy]|qu)ies$", r"\1y"),
    (r"([lr])ves$", r"\1f"),
    (r"(tive)s$", r"\1"),
    (r"(hive)s$", r"\1"),
    (r"([^f])ves$", r"\1fe"),
    (r"(^analy)(sis|ses)$", r"\1sis"),
    (r"((a)naly|(b)a|(d)iagno|(p)arenthe|(p)rogno|(s)ynop|(t)he)(sis|ses)$", r"\1sis"),
    (r"([ti])a$", r"\1um"),
    (r"(n)ews$", r"\1ews"),
    (r"(ss)$", r"\1"),
    (r"s$", ""),
]

IRREGULARS: List[Tuple[str, str]] = [
    ("person", "people"),
    ("man", "men"),
    ("child", "children"),
    ("sex", "sexes"),
    ("move", "moves"),
]

UNCOUNTABLES = {"equipment", "information", "rice", "money", "species", "series", "fish", "sheep", "news"}


def _apply(word: str, rules: List[Tuple[str, str]], irregular: List[Tuple[str, str]]) -> str:
    if not word or word.lower() in UNCOUNTABLES:
        return word
    for source, target in irregular:
        match = re.search(rf"(^|_)({source})$", word, re.IGNORECASE)
        if match:
            # keep the case of the first letter
            return word[:match.start(2)] + match.group(2)[0] + target[1:]
    for pattern, replacement in rules:
        if re.search(pattern, word, re.IGNORECASE):
            return re.sub(pattern, replacement, word, count=1, flags=re.IGNORECASE)
    return word


def pluralize(word: str) -> str:
    return _apply(word, PLURALS, IRREGULARS)


def singularize(word: str) -> str:
    return _apply(word, SINGULARS, [(plural, singular) for singular, plural in IRREGULARS])


def underscore(camel_cased: str) -> str:
    """'MasterCreditCard' -> 'master_credit_card'."""
    word = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", camel_cased.split(".")[-1])
    word = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", word)
    return word.replace("-", "_").lower()


def camelize(lower_case_and_underscored: str) -> str:
    """'account_holder' -> 'AccountHolder'."""
    return "".join(part[:1].upper() + part[1:] for part in lower_case_and_underscored.split("_") if part)


def table_name_for(class_name: str, settings: Optional[RecordSettings] = None) -> str:
    settings = settings or RecordSettings()
    name = underscore(class_name)
    if settings.pluralize_table_names:
        name = pluralize(name)
    return f"{settings.table_name_prefix}{name}{settings.table_name_suffix}"


def class_name(table_name: str, settings: Optional[RecordSettings] = None) -> str:
    """Inverse of table_name_for: strips prefix/suffix, singularizes, camelizes."""
    settings = settings or RecordSettings()
    name = table_name
    prefix, suffix = settings.table_name_prefix, settings.table_name_suffix
    if prefix and name.startswith(prefix):
        name = name[len(prefix):]
    if suffix and name.endswith(suffix):
        name = name[:-len(suffix)]
    if settings.pluralize_table_names:
        name = singularize(name)
    return camelize(name)
