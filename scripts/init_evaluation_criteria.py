#!/usr/bin/env python3
"""Seed the default evaluation criteria templates (one per stage).

Stages that already have an active default template are left alone, so the
script can be re-run safely.

Run from project root: python scripts/init_evaluation_criteria.py
"""
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from mentor_recruit import create_app
from mentor_recruit.models.evaluation import EVALUATION_STAGES
from mentor_recruit.services.criteria import create_default_criteria, get_default_criteria


def main():
    app = create_app()
    with app.app_context():
        ids = create_default_criteria(created_by='system')
        print(f"Created {len(ids)} default criteria templates.")
        for stage in EVALUATION_STAGES:
            tpl = get_default_criteria(stage)
            print(f"- {stage}: {tpl.name if tpl else '(none)'}")


if __name__ == '__main__':
    main()
