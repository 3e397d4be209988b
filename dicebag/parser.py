import enum
import logging
import operator
import re
import typing

from dicebag.roll import (
    PERCENTILE_SIDES,
    ConstTerm,
    Kind,
    RawTerm,
    RollConfig,
    RollTerm,
    Sampler,
    Term,
)

logger = logging.getLogger(__name__)

# Default seperator for output strings.
SEP = "\t"

SECTION_SEPERATOR = ","

LABEL_REGEX = re.compile(r"\((.*?)\)")

# Labels and whitespace are removed from a section before it is tokenized.
STRIP_REGEX = re.compile(r"\(.*?\)|\s")

# A token is either a sign or a run of characters which could make up a term.
# Anything else is skipped.
TOKEN_REGEX = re.compile(r"[+-]|[0-9*!xdeikrt%]+", flags=re.IGNORECASE)

CONST_REGEX = re.compile(r"\d+")

# Explanation of groups in the below regex:
#
# times: the number of times to roll this group, followed by x.
#   e.g. <6>x4d6
# count: the number of dice to roll
#   e.g. <2>d10 <8>d6
# sides: the size of dice to roll, % being a d100
#   e.g. 2d<10> d<%>
# mods: any number of modifiers, in any order.
#   e.g. 4d6<k3> 3d6<e6r1> 10d10<ie9t8>
ROLL_REGEX = re.compile(
    r"(?:(?P<times>\d{1,2})x)?"
    r"(?P<count>\d{1,2})?"
    r"d(?P<sides>\d{1,3}|%)"
    r"(?P<mods>(?:i?e\d{0,2}|[k!dr*t]\d{1,2})*)"
)

MODIFIER_REGEX = re.compile(r"(ie|e|[k!dr*t])(\d*)")

# Modifier -> (RollConfig field, smallest value which enables the modifier).
# Values below this fall back to the field's default.
MODIFIERS = {
    "e": ("explode", 2),
    "ie": ("explode", 2),
    "*": ("multiplier", 2),
    "k": ("keep", 1),
    "!": ("keep", 1),
    "r": ("reroll", 1),
    "d": ("drop", 1),
    "t": ("target", 1),
}


class Op(enum.Enum):
    START = ""
    ADD = "+"
    SUB = "-"

    def apply(self, total: int, value: int) -> int:
        return Op.get_operation(self)(total, value)

    @staticmethod
    def get_operation(op: "Op") -> typing.Callable:
        return {
            Op.START: operator.add,
            Op.ADD: operator.add,
            Op.SUB: operator.sub,
        }[op]


class SectionResult(typing.NamedTuple):
    total: int
    parts: typing.List[Term]
    label: typing.Optional[str]


class Expression:
    def __init__(
        self,
        terms: typing.Optional[typing.List[typing.Tuple[Op, Term]]] = None,
        label: typing.Optional[str] = None,
    ):
        self.terms = terms or []
        self.label = label

    def __eq__(self, o: object) -> bool:
        return (
            isinstance(o, Expression)
            and o.label == self.label
            and o.terms == self.terms
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}<{str(self)}>"

    def __str__(self) -> str:
        strings = []
        if self.label is not None:
            strings.append(f"({self.label})")

        for i, (op, term) in enumerate(self.terms):
            if i == 0 and op is not Op.SUB:
                strings.append(str(term))
            else:
                sign = Op.SUB.value if op is Op.SUB else Op.ADD.value
                strings.append(f"{sign} {term}")

        return " ".join(strings)

    @property
    def rolls(self) -> typing.List[RollTerm]:
        return [term for _, term in self.terms if isinstance(term, RollTerm)]

    def evaluate(self) -> SectionResult:
        """Total the terms, rolling any dice which haven't been rolled yet."""

        total = 0
        parts = []
        for op, term in self.terms:
            if term.kind is Kind.LABEL:
                continue
            total = op.apply(total, term.value)
            parts.append(term)

        return SectionResult(total, parts, self.label)

    def roll(self) -> SectionResult:
        for term in self.rolls:
            term.roll()
        return self.evaluate()

    def bounds(self) -> typing.Tuple[int, int]:
        low = high = 0
        for op, term in self.terms:
            if isinstance(term, RollTerm):
                times = term.config.times
                term_low = term.minimum() * times
                term_high = term.maximum() * times
            else:
                term_low = term_high = term.value

            if op is Op.SUB:
                low, high = low - term_high, high - term_low
            else:
                low, high = low + term_low, high + term_high

        return low, high

    def minimum(self) -> int:
        return self.bounds()[0]

    def maximum(self) -> int:
        return self.bounds()[1]

    def average(self) -> float:
        return sum(self.bounds()) / 2


class Document:
    def __init__(
        self, sections: typing.Optional[typing.List[Expression]] = None
    ):
        self.sections = sections or []

    def __eq__(self, o: object) -> bool:
        return isinstance(o, Document) and o.sections == self.sections

    def __iter__(self) -> typing.Iterator[Expression]:
        return iter(self.sections)

    def __len__(self) -> int:
        return len(self.sections)

    def __repr__(self) -> str:
        return f"{type(self).__name__}<{str(self)}>"

    def __str__(self) -> str:
        return f"{SECTION_SEPERATOR} ".join(str(s) for s in self.sections)

    def roll(self) -> typing.List[SectionResult]:
        """Roll every section, re-sampling all dice."""

        return [section.roll() for section in self.sections]

    @staticmethod
    def parse(
        string: str, sampler: typing.Optional[Sampler] = None
    ) -> "Document":
        if not string.strip():
            return Document()

        return Document(
            [
                parse_section(section, sampler)
                for section in string.split(SECTION_SEPERATOR)
            ]
        )


def split_label(section: str) -> typing.Tuple[typing.Optional[str], str]:
    """Return the first label in section and section without its labels."""

    labels = LABEL_REGEX.findall(section)
    label = labels[0] if labels else None

    return label, STRIP_REGEX.sub("", section)


def tokenize(string: str) -> typing.List[str]:
    return TOKEN_REGEX.findall(string)


def parse_roll(token: str) -> typing.Optional[RollConfig]:
    """Parse a roll like 6x4d6k3, returning None if token isn't a roll."""

    match = ROLL_REGEX.fullmatch(re.sub(r"\s+", "", token.lower()))
    if not match:
        return None

    sides_str = match.group("sides")
    sides = PERCENTILE_SIDES if sides_str == "%" else int(sides_str)
    if sides < 2:
        return None

    fields: typing.Dict[str, typing.Any] = {"sides": sides}

    times = int(match.group("times") or 0)
    if times > 0:
        fields["times"] = times

    count = int(match.group("count") or 0)
    if count > 1:
        fields["count"] = count

    for mod, digits in MODIFIER_REGEX.findall(match.group("mods")):
        # A bare e or ie explodes on the highest face.
        value = int(digits) if digits else sides
        field, minimum = MODIFIERS[mod]
        if value < minimum:
            continue

        fields[field] = value
        if field == "explode":
            fields["explode_indefinite"] = mod == "ie"

    return RollConfig(**fields)


def make_term(token: str, sampler: typing.Optional[Sampler] = None) -> Term:
    if CONST_REGEX.fullmatch(token):
        try:
            return ConstTerm(int(token))
        except ValueError:
            # Too many digits for int() to convert.
            logger.debug("Passing through oversized constant %.20r", token)
            return RawTerm(token)

    config = parse_roll(token)
    if config is not None:
        return RollTerm(config, sampler)

    logger.debug("Passing through unrecognised term %r", token)
    return RawTerm(token)


def parse_section(
    section: str, sampler: typing.Optional[Sampler] = None
) -> Expression:
    label, body = split_label(section)

    terms: typing.List[typing.Tuple[Op, Term]] = []
    op = Op.START
    for token in tokenize(body):
        if token == "+":
            op = Op.ADD if terms else Op.START
        elif token == "-":
            op = Op.SUB
        else:
            terms.append((op, make_term(token, sampler)))
            # Terms with no sign between them are added together.
            op = Op.ADD

    return Expression(terms, label)


def parse(string: str, sampler: typing.Optional[Sampler] = None) -> Document:
    return Document.parse(string, sampler)


def calculate_total(results: typing.List[SectionResult]) -> int:
    """Calculate the total of a list of section results."""

    return sum(result.total for result in results)


def get_result(string: str, sampler: typing.Optional[Sampler] = None) -> int:
    """Roll every section of string and return the sum of their totals."""

    return calculate_total(parse(string, sampler).roll())


def pad_to_longest(strings: typing.List[str]) -> typing.List[str]:
    """Space pad a list of strings to the same length."""

    length = max(len(s) for s in strings)
    return [s.ljust(length) for s in strings]


def roll_str(result: SectionResult) -> str:
    rolls = [
        str(n)
        for part in result.parts
        for _, tally in part.roll_info()
        for n in tally
    ]
    if not rolls:
        return ""

    return "Roll" + ("s" if len(rolls) > 1 else "") + ": " + ", ".join(rolls)


def results_string(
    document: Document, results: typing.List[SectionResult], sep=SEP
) -> str:
    """Return a descriptive string for the results of rolling document."""

    if not results:
        return ""

    desc_strs = pad_to_longest([str(section) for section in document])
    roll_strs = pad_to_longest([roll_str(result) for result in results])

    lines = [
        f"{desc_str}{sep}{rolls_str}{sep}Total: {result.total}"
        for desc_str, rolls_str, result in zip(desc_strs, roll_strs, results)
    ]
    if len(results) > 1:
        lines.append(f"Grand Total: {calculate_total(results)}")

    return "\n".join(lines)
