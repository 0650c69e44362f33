from .user import User
from .evaluation_criteria import EvaluationCriteria
from .evaluation import Evaluation
from .user_evaluation_summary import UserEvaluationSummary
# base mixins are imported by the above as needed
