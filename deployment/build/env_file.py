"""
Application .env rewriting.

Each managed key is rewritten with a sed ``s`` expression of the form
``s/^KEY=.*/KEY=value/``. The value is inserted verbatim and the expression is
then interpreted with sed semantics, so the output is byte-for-byte what
``sed -i -e <expr> .env`` produces on the same input:

* ``&`` in a value expands to the matched line and ``\\`` starts an escape,
  which corrupts the value deterministically.
* A value containing the rule's delimiter terminates the replacement early and
  the remainder is read as flags; sed rejects that with "unknown option to s",
  and so does ``SedSubstitution.parse``.
* Lines end at ``\\n`` only. In a CRLF file ``.*`` consumes the ``\\r``, so a
  rewritten line comes out with a bare ``\\n`` ending.

All three are known limitations of the recipe and are left as is.
"""
import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from deployment.exceptions import SubstitutionError

logger = logging.getLogger(__name__)

# BRE metacharacters that are only special when escaped (GNU extensions)
_BRE_ESCAPED_SPECIALS = {'(': '(', ')': ')', '{': '{', '}': '}', '+': '+', '?': '?', '|': '|'}
_BRE_LITERALS = set('(){}+?|')


def _bre_to_python(pattern: str) -> str:
    """Translate a sed basic regular expression to Python ``re`` syntax."""
    out = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == '\\' and i + 1 < len(pattern):
            nxt = pattern[i + 1]
            if nxt in _BRE_ESCAPED_SPECIALS:
                out.append(_BRE_ESCAPED_SPECIALS[nxt])
            elif nxt == 'n':
                out.append('\\n')
            elif nxt == 't':
                out.append('\\t')
            else:
                out.append('\\' + nxt)
            i += 2
            continue
        if ch in _BRE_LITERALS:
            out.append('\\' + ch)
        else:
            out.append(ch)
        i += 1
    return ''.join(out)


@dataclass(frozen=True)
class SedSubstitution:
    """A parsed ``s<d>pattern<d>replacement<d>flags`` expression."""
    pattern: str
    replacement: str
    global_replace: bool = False
    occurrence: int = 1
    ignore_case: bool = False

    @classmethod
    def parse(cls, expression: str) -> 'SedSubstitution':
        if len(expression) < 2 or expression[0] != 's':
            raise SubstitutionError(f"unknown command: `{expression[:1]}'")

        delimiter = expression[1]
        if delimiter in ('\\', '\n'):
            raise SubstitutionError("delimiter cannot be a backslash or newline")

        parts: List[str] = []
        buf: List[str] = []
        i = 2
        while i < len(expression) and len(parts) < 2:
            ch = expression[i]
            if ch == '\\' and i + 1 < len(expression):
                nxt = expression[i + 1]
                # An escaped delimiter stands for the delimiter itself
                buf.append(nxt if nxt == delimiter else ch + nxt)
                i += 2
                continue
            if ch == delimiter:
                parts.append(''.join(buf))
                buf = []
            else:
                buf.append(ch)
            i += 1

        if len(parts) < 2:
            raise SubstitutionError("unterminated `s' command")

        global_replace = False
        ignore_case = False
        occurrence = None
        digits = ''
        for ch in expression[i:]:
            if ch.isdigit():
                digits += ch
                continue
            if digits:
                if occurrence is not None:
                    raise SubstitutionError("multiple number options to `s' command")
                occurrence = int(digits)
                digits = ''
            if ch == 'g':
                global_replace = True
            elif ch in ('I', 'i'):
                ignore_case = True
            else:
                raise SubstitutionError("unknown option to `s'")
        if digits:
            if occurrence is not None:
                raise SubstitutionError("multiple number options to `s' command")
            occurrence = int(digits)
        if occurrence == 0:
            raise SubstitutionError("number option to `s' command may not be zero")

        return cls(
            pattern=parts[0],
            replacement=parts[1],
            global_replace=global_replace,
            occurrence=occurrence or 1,
            ignore_case=ignore_case,
        )

    def _compile(self):
        flags = re.IGNORECASE if self.ignore_case else 0
        try:
            return re.compile(_bre_to_python(self.pattern), flags)
        except re.error as e:
            raise SubstitutionError(f"invalid pattern {self.pattern!r}: {e}") from e

    def _expand(self, match) -> str:
        """Expand the replacement for one match (``&``, ``\\N``, escapes)."""
        out = []
        text = self.replacement
        i = 0
        while i < len(text):
            ch = text[i]
            if ch == '&':
                out.append(match.group(0))
            elif ch == '\\' and i + 1 < len(text):
                nxt = text[i + 1]
                if nxt.isdigit():
                    group = int(nxt)
                    if group > (match.re.groups or 0):
                        raise SubstitutionError(f"invalid reference \\{group} on `s' command's RHS")
                    out.append(match.group(group) or '')
                elif nxt == 'n':
                    out.append('\n')
                elif nxt == 't':
                    out.append('\t')
                else:
                    out.append(nxt)
                i += 2
                continue
            else:
                out.append(ch)
            i += 1
        return ''.join(out)

    def apply_line(self, line: str) -> str:
        regex = self._compile()
        result = []
        last = 0
        seen = 0
        for match in regex.finditer(line):
            seen += 1
            if seen < self.occurrence:
                continue
            if seen > self.occurrence and not self.global_replace:
                break
            result.append(line[last:match.start()])
            result.append(self._expand(match))
            last = match.end()
        result.append(line[last:])
        return ''.join(result)

    def apply(self, text: str) -> str:
        """Apply to each newline-terminated line. A carriage return is part of the line, as in sed."""
        if not text:
            return text
        lines = text.split('\n')
        terminated = lines[-1] == ''
        if terminated:
            lines.pop()
        result = '\n'.join(self.apply_line(line) for line in lines)
        return result + '\n' if terminated else result


@dataclass(frozen=True)
class EnvRule:
    """Whole-line replacement of ``KEY=...`` with a value built from a template."""
    key: str
    template: str
    delimiter: str = '/'

    def value(self, values: Dict[str, str]) -> str:
        return self.template.format(**values)

    def expression(self, values: Dict[str, str]) -> str:
        d = self.delimiter
        return f"s{d}^{self.key}=.*{d}{self.key}={self.value(values)}{d}"


# DB_PASSWORD is blanked in the image and injected at container start
ENV_RULES = (
    EnvRule('APP_ENV', '{app_env}'),
    EnvRule('APP_URL', 'https://{domain_name}/', delimiter='|'),
    EnvRule('DB_HOST', '{rds_endpoint}'),
    EnvRule('DB_DATABASE', '{rds_db_name}'),
    EnvRule('DB_USERNAME', '{rds_username}'),
    EnvRule('DB_PASSWORD', ''),
)


def render_expressions(values: Dict[str, str], rules: Iterable[EnvRule] = ENV_RULES) -> List[str]:
    """Sed expressions for each rule, in rule order."""
    return [rule.expression(values) for rule in rules]


def rewrite_env(text: str, values: Dict[str, str], rules: Iterable[EnvRule] = ENV_RULES) -> str:
    """Apply every rule to ``text`` and return the rewritten content."""
    for expression in render_expressions(values, rules):
        text = SedSubstitution.parse(expression).apply(text)
    return text


def missing_keys(text: str, rules: Iterable[EnvRule] = ENV_RULES) -> List[str]:
    """Managed keys with no ``KEY=`` line in ``text``."""
    present = {line.split('=', 1)[0] for line in text.splitlines() if '=' in line}
    return [rule.key for rule in rules if rule.key not in present]


def rewrite_env_file(web_root: Path, values: Dict[str, str],
                     rules: Iterable[EnvRule] = ENV_RULES,
                     example_name: Optional[str] = '.env.example') -> Path:
    """Rewrite ``<web_root>/.env`` in place, seeding it from the example file if absent."""
    rules = tuple(rules)
    env_path = Path(web_root) / '.env'
    if not env_path.exists():
        example = Path(web_root) / example_name if example_name else None
        if example is None or not example.exists():
            raise SubstitutionError(f"No .env found in {web_root}")
        shutil.copyfile(example, env_path)
        logger.info(f"Seeded .env from {example_name}")

    # newline='' keeps CRLF bytes as they are
    with open(env_path, 'r', encoding='utf-8', newline='') as f:
        text = f.read()
    for key in missing_keys(text, rules):
        logger.warning(f"⚠️ {key} not present in .env - line left untouched")

    with open(env_path, 'w', encoding='utf-8', newline='') as f:
        f.write(rewrite_env(text, values, rules))
    logger.info(f"Rewrote {len(rules)} keys in {env_path}")
    return env_path
