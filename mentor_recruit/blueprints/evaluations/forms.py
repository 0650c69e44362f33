from flask_wtf import FlaskForm
from wtforms import StringField, IntegerField, SelectField, TextAreaField
from wtforms.validators import DataRequired, Optional, NumberRange, Length
from ...models.evaluation import EVALUATION_STAGES

class EvaluationForm(FlaskForm):
    """Top-level fields of an evaluation submission (JSON body).

    Per-criterion scores are checked against the criteria template in
    services.evaluation.validate_form_data.
    """
    class Meta:
        csrf = False  # JSON API

    evaluation_stage = SelectField("평가 단계", choices=[(s, s) for s in EVALUATION_STAGES], validators=[DataRequired()])
    criteria_template_id = IntegerField("평가 기준", validators=[DataRequired()])
    target_user_id = IntegerField("평가 대상자", validators=[DataRequired()])
    ref_application_id = StringField("지원 내역", validators=[Optional(), Length(max=64)])
    ref_job_board_id = StringField("채용 공고", validators=[Optional(), Length(max=64)])
    duration = IntegerField("소요 시간(분)", validators=[Optional(), NumberRange(min=0)])
    overall_feedback = TextAreaField("종합 피드백", validators=[DataRequired()], render_kw={"rows": 4})
