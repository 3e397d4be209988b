from dicebag.parser import (
    Document,
    Expression,
    Op,
    SectionResult,
    get_result,
    parse,
    results_string,
)
from dicebag.roll import (
    EXPLODE_LIMIT,
    ConstTerm,
    InvalidRollConfig,
    Kind,
    LabelTerm,
    RawTerm,
    RollConfig,
    RollResult,
    RollTerm,
    Term,
    default_sampler,
    sampler_from,
)
