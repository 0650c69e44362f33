import os
import sys
from datetime import datetime, timedelta

import pytest
from flask import g

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from mentor_recruit import create_app
from mentor_recruit.extensions import db as _db
from mentor_recruit.models.evaluation import EVALUATION_STAGES
from mentor_recruit.models.user import User
from mentor_recruit.services.criteria import create_default_criteria, get_default_criteria

BASE_DATE = datetime(2025, 3, 1, 9, 0, 0)


@pytest.fixture
def app():
    app = create_app('config.TestConfig')
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def admin(db):
    u = User(email="admin@example.com", name="관리자 김", role="admin")
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def subject(db):
    u = User(email="mentor@example.com", name="멘토 이", role="mentor")
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def templates(app):
    create_default_criteria()
    return {stage: get_default_criteria(stage) for stage in EVALUATION_STAGES}


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, user):
    """Sign ``user`` in on ``client``.

    Requests in these tests run inside the fixture's app context, so the
    user Flask-Login cached on ``g`` is dropped to make the next request
    load the new session.
    """
    with client.session_transaction() as sess:
        sess["_user_id"] = str(user.id)
        sess["_fresh"] = True
    g.pop("_login_user", None)


@pytest.fixture
def admin_client(client, admin):
    login(client, admin)
    return client


def form_for(template, user, score, feedback="성실하게 참여함", days=0, **extra):
    """Form data scoring every criterion of ``template`` with ``score``.

    ``score`` may also be a list, one value per criterion in template order.
    """
    items = template.ordered_items()
    values = score if isinstance(score, (list, tuple)) else [score] * len(items)
    data = {
        "evaluation_stage": template.stage,
        "criteria_template_id": template.id,
        "target_user_id": user.id,
        "target_user_name": user.name,
        "scores": {item["id"]: {"score": v} for item, v in zip(items, values)},
        "overall_feedback": feedback,
        "evaluation_date": BASE_DATE + timedelta(days=days),
    }
    data.update(extra)
    return data
