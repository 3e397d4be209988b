import enum
import heapq
import logging
import random
import typing

logger = logging.getLogger(__name__)

# Source of randomness: takes a number of sides, returns a value in [1, sides]
Sampler = typing.Callable[[int], int]

# Type used to represent the result of a given roll
# (roll_format, results)
RollInfo = typing.Tuple[str, typing.List[int]]

# Each die that is rolled can earn at most this many extra dice by exploding,
# so that configurations like 1d6 ie1 still terminate.
EXPLODE_LIMIT = 20

DEFAULT_SIDES = 6

# Sides of a d%
PERCENTILE_SIDES = 100


def default_sampler(sides: int) -> int:
    return random.randint(1, sides)


def sampler_from(rng: random.Random) -> Sampler:
    """Build a sampler which draws from rng, e.g. a seeded random.Random."""

    return lambda sides: rng.randint(1, sides)


class InvalidRollConfig(ValueError):
    """Raised when a roll is configured with impossible values."""


class Kind(enum.Enum):
    CONST = enum.auto()
    LABEL = enum.auto()
    RAW = enum.auto()
    ROLL = enum.auto()


class Term:
    KIND: Kind

    def __repr__(self) -> str:
        return f"{type(self).__name__}<{str(self)}>"

    @property
    def kind(self) -> Kind:
        return self.KIND

    @property
    def value(self) -> int:
        raise NotImplementedError()

    def roll_info(self) -> typing.List[RollInfo]:
        return []


class ConstTerm(Term):
    KIND = Kind.CONST

    def __init__(self, value: int):
        self._value = value

    def __eq__(self, o: object) -> bool:
        return isinstance(o, ConstTerm) and o.value == self.value

    def __str__(self) -> str:
        return str(self._value)

    @property
    def value(self) -> int:
        return self._value


class TextTerm(Term):
    def __init__(self, text: str):
        self.text = text

    def __eq__(self, o: object) -> bool:
        return type(o) == type(self) and o.text == self.text  # type: ignore

    def __str__(self) -> str:
        return self.text

    @property
    def value(self) -> int:
        # Text never counts towards a total.
        return 0


class LabelTerm(TextTerm):
    KIND = Kind.LABEL

    def __str__(self) -> str:
        return f"({self.text})"


class RawTerm(TextTerm):
    """Anything the grammar didn't recognise, echoed back as written."""

    KIND = Kind.RAW


class RollConfig(
    typing.NamedTuple(
        "RollConfig",
        [
            ("count", int),
            ("sides", int),
            ("times", int),
            ("explode", int),
            ("explode_indefinite", bool),
            ("reroll", int),
            ("keep", int),
            ("drop", int),
            ("multiplier", int),
            ("target", int),
        ],
    )
):
    # Fields are read only, so a config is checked once, here.
    __slots__ = ()

    def __new__(
        cls,
        count: int = 1,
        sides: int = DEFAULT_SIDES,
        times: int = 1,
        explode: int = 0,
        explode_indefinite: bool = False,
        reroll: int = 0,
        keep: int = 0,
        drop: int = 0,
        multiplier: int = 0,
        target: int = 0,
    ) -> "RollConfig":
        if sides < 2:
            raise InvalidRollConfig(f"A die needs at least 2 sides: {sides}.")
        if count < 1:
            raise InvalidRollConfig(f"Must roll at least one die: {count}.")
        if times < 1:
            raise InvalidRollConfig(f"Must roll at least once: {times}.")
        for name, value in [
            ("explode", explode),
            ("reroll", reroll),
            ("keep", keep),
            ("drop", drop),
            ("multiplier", multiplier),
            ("target", target),
        ]:
            if value < 0:
                raise InvalidRollConfig(f"Negative {name} value: {value}.")

        return super().__new__(
            cls,
            count,
            sides,
            times,
            explode,
            explode_indefinite,
            reroll,
            keep,
            drop,
            multiplier,
            target,
        )

    @property
    def effective_reroll(self) -> int:
        # Rerolling every face would never finish, so don't reroll at all.
        return self.reroll if self.reroll < self.sides else 0


class RollResult(typing.NamedTuple):
    # Every die drawn for the group, in the order drawn
    tally: typing.List[int]
    total: int
    # The tally split into the original dice and each wave of explosions
    waves: typing.List[typing.List[int]]


class RollTerm(Term):
    KIND = Kind.ROLL

    def __init__(
        self, config: RollConfig, sampler: typing.Optional[Sampler] = None
    ):
        self.config = config
        self.sampler = sampler or default_sampler
        self._results: typing.Optional[typing.List[RollResult]] = None

        if config.reroll and not config.effective_reroll:
            logger.debug(
                "Ignoring reroll of %d on d%d", config.reroll, config.sides
            )

    def __eq__(self, o: object) -> bool:
        return isinstance(o, RollTerm) and o.config == self.config

    def __str__(self) -> str:
        return self.notation()

    @property
    def rolled(self) -> bool:
        return self._results is not None

    @property
    def results(self) -> typing.List[RollResult]:
        if self._results is None:
            self.roll()
        return self._results  # type: ignore

    @property
    def total(self) -> int:
        return sum(result.total for result in self.results)

    @property
    def tally(self) -> typing.List[typing.List[int]]:
        return [result.tally for result in self.results]

    @property
    def value(self) -> int:
        return self.total

    def roll_info(self) -> typing.List[RollInfo]:
        return [(str(self), result.tally) for result in self.results]

    def draw(self) -> int:
        sides = self.config.sides
        n = self.sampler(sides)
        if not 1 <= n <= sides:
            raise ValueError(f"Sampler returned {n} for a d{sides}.")
        return n

    def roll_die(self) -> int:
        reroll = self.config.effective_reroll

        n = self.draw()
        while n <= reroll:
            n = self.draw()
        return n

    def roll(self) -> typing.List[RollResult]:
        """Roll every group, replacing the results of any previous roll."""

        self._results = [self.roll_group() for _ in range(self.config.times)]
        return self._results

    def roll_group(self) -> RollResult:
        config = self.config

        wave = [self.roll_die() for _ in range(config.count)]
        waves = [wave]

        if config.explode:
            # origins[i] is the index of the original die that wave[i]
            # descends from, used to enforce EXPLODE_LIMIT per die.
            origins = list(range(config.count))
            extras = [0] * config.count

            while True:
                next_wave = []
                next_origins = []
                for n, origin in zip(wave, origins):
                    if n < config.explode:
                        continue
                    if extras[origin] >= EXPLODE_LIMIT:
                        logger.debug(
                            "Die %d of %s hit the explode limit", origin, self
                        )
                        continue
                    extras[origin] += 1
                    next_wave.append(self.roll_die())
                    next_origins.append(origin)

                if not next_wave:
                    break
                waves.append(next_wave)

                if not config.explode_indefinite:
                    break
                wave, origins = next_wave, next_origins

        tally = [n for wave in waves for n in wave]
        return RollResult(tally, self.calculate_total(tally), waves)

    def select(self, tally: typing.List[int]) -> typing.List[int]:
        """The dice which count towards the total, highest first."""

        if self.config.keep:
            return heapq.nlargest(self.config.keep, tally)
        elif self.config.drop:
            return heapq.nlargest(len(tally) - self.config.drop, tally)
        return sorted(tally, reverse=True)

    def calculate_total(self, tally: typing.List[int]) -> int:
        selected = self.select(tally)

        if self.config.target:
            total = len([n for n in selected if n >= self.config.target])
        else:
            total = sum(selected)

        if self.config.multiplier > 1:
            total *= self.config.multiplier
        return total

    # The following ignore times and explode, so describe a single group
    # without explosions.

    def maximum(self) -> int:
        return self._extreme(self.config.sides)

    def minimum(self) -> int:
        # A reroll covering every face leaves nothing to roll but the max.
        if self.config.reroll >= self.config.sides:
            return self.maximum()
        return self._extreme(self.config.reroll + 1)

    def average(self) -> float:
        return (self.maximum() + self.minimum()) / 2

    def _extreme(self, face: int) -> int:
        qty = self.config.keep or self.config.count
        return qty * face * max(self.config.multiplier, 1)

    def notation(self, spaced: bool = False) -> str:
        """Canonical notation for this roll, omitting disabled modifiers."""

        config = self.config
        sep = " " if spaced else ""

        string = f"{config.times}x{sep}" if config.times > 1 else ""
        string += f"{config.count}d{config.sides}"

        if config.explode:
            string += sep + ("ie" if config.explode_indefinite else "e")
            if config.explode != config.sides:
                string += str(config.explode)
        if config.multiplier > 1:
            string += f"{sep}*{config.multiplier}"
        if config.keep:
            string += f"{sep}k{config.keep}"
        if config.reroll:
            string += f"{sep}r{config.reroll}"
        if config.drop:
            string += f"{sep}d{config.drop}"
        if config.target:
            string += f"{sep}t{config.target}"

        return string
