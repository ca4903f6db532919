"""
Example sheets for demos and tests.

Two levels of a pilgrimage eligibility questionnaire:

    Level 1 (Personal): adult -> resident -> first pilgrimage? -> package
    Level 2 (Health):   healthy? -> companion (guarded on HEALTH_STATE)
"""
from typing import Dict

from sheetflow.compiler import compile_rules_text
from sheetflow.model import LevelGraph
from sheetflow.sheets import load_phrases, load_question_texts
from sheetflow.table import parse_table

EXAMPLE_RULES_CSV = """\
level,qId,input_type,field,option_label,option_value,next,fail_reason,set_vars,phrase,guard_if_var,guard_op,guard_value,guard_next,guard_reason,fallback
1,L1Q1,bool,adult,Yes,true,L1Q2,,,,,,,,,FAIL
1,L1Q1,bool,adult,No,false,,NOT_ADULT,,,,,,,,
1,L1Q2,bool,resident,Yes,true,L1Q3,,,,,,,,,
1,L1Q2,bool,resident,No,false,FAIL,NOT_RESIDENT,,,,,,,,
1,L1Q3,bool,first_time,Yes,true,L1Q4,,,,,,,,,
1,L1Q3,bool,first_time,No,false,END,,END_PHRASE=repeat_pilgrim,,,,,,,
1,L1Q4,options3,package,full package,full,END,,END_PHRASE=eligible_full,full_package_note,,,,,,
1,L1Q4,options3,package,partial package,partial,END,,NIYABAT=true;END_PHRASE=eligible_partial,,,,,,,
1,L1Q4,options3,package,other,other,,OTHER_PACKAGE,,,,,,,,
2,L2Q1,bool,healthy,Yes,true,END,,END_PHRASE=health_ok,,,,,,,
2,L2Q1,bool,healthy,No,false,L2Q2,,HEALTH_STATE=ORANGE,,,,,,,
2,L2Q2,bool,companion,Yes,true,,,,,HEALTH_STATE,==,ORANGE,END,companion_required,FAIL
2,L2Q2,bool,companion,No,false,FAIL,NO_COMPANION,,,,,,,,
"""

EXAMPLE_QUESTIONS_CSV = """\
level,qId,question_text,help_text,label1,label2,label3
1,L1Q1,Are you 18 or older?,,,,
1,L1Q2,Do you live in the country?,Residence permits count.,,,
1,L1Q3,Is this your first pilgrimage?,,,,
1,L1Q4,Which package do you want?,,full package,partial package,other
2,L2Q1,Are you in good health?,,,,
2,L2Q2,Will a companion travel with you?,,,,
"""

EXAMPLE_PHRASES_CSV = """\
key,text
NOT_ADULT,You must be an adult to apply.
NOT_RESIDENT,Only residents can apply.
OTHER_PACKAGE,Please contact the office about other packages.
NO_COMPANION,A companion is required.
repeat_pilgrim,You may apply again next season.
eligible_full,You are eligible for the full package.
eligible_partial,You are eligible for the partial package.
health_ok,Your health check passed.
companion_required,You are eligible when travelling with a companion.
you_are_eligible,You are eligible.
you_are_not_eligible,You are not eligible.
"""


def build_example_graphs() -> Dict[str, LevelGraph]:
    return compile_rules_text(EXAMPLE_RULES_CSV)


def build_example_texts():
    return load_question_texts(parse_table(EXAMPLE_QUESTIONS_CSV))


def build_example_phrases() -> Dict[str, str]:
    return load_phrases(parse_table(EXAMPLE_PHRASES_CSV))
