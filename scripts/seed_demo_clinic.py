#!/usr/bin/env python3
"""
Seed a demo clinic for trying the pipeline and AI activation locally.

Creates one clinic with:
  1. Five pipeline stages (Novo → Fechado)
  2. Leads from ad and organic origins, AI state resolved per clinic rules
  3. One unread chat message from the first lead
  4. One pending AI report request

Usage:
    python scripts/seed_demo_clinic.py          # seed the demo clinic
    python scripts/seed_demo_clinic.py --clear  # wipe seeded clinics first

Requires: DATABASE_URL set (or defaults to sqlite:///local.db). Redis is
optional; change events are dropped with a warning when it is down.
"""
import sys
import os
import uuid
import argparse
from datetime import date, timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from clinic_crm import create_app
from clinic_crm.database import get_session, engine, Base
from clinic_crm.models.ai_report import AIReport
from clinic_crm.models.clinic import Clinic
from clinic_crm.models.lead import Lead
from clinic_crm.models.message import Message
from clinic_crm.models.stage import Stage
from clinic_crm.services.ai_activation import resolve_ai_enabled
from clinic_crm.services.store import get_store


STAGES = ['Novo', 'Primeiro contato', 'Avaliação agendada', 'Orçamento enviado', 'Fechado']

LEADS = [
    {'name': 'Mariana Costa',   'origin': 'Instagram Ads',          'stage': 0},
    {'name': 'Paulo Henrique',  'origin': 'Google Ads - implante',  'stage': 0},
    {'name': 'Fernanda Lima',   'origin': 'indicação',              'stage': 1},
    {'name': 'Ricardo Alves',   'origin': 'Facebook',               'stage': 1},
    {'name': 'Juliana Rocha',   'origin': 'walk-in',                'stage': 2},
    {'name': 'Bruno Martins',   'origin': 'Campanha clareamento',   'stage': 3},
    {'name': 'Camila Souza',    'origin': None,                     'stage': 4},
]

# Prefix for seeded IDs so we can clear them
SEED_PREFIX = 'seed-'


def make_id():
    return SEED_PREFIX + str(uuid.uuid4())


def seed_clinic(session):
    clinic = Clinic(
        id=make_id(),
        name='Clínica Demo Sorriso',
        ai_active_for_all_new_leads=False,
        ai_active_for_ad_leads_only=True,
        ai_operating_mode='horario_comercial',
        ai_name='Sofia',
        whatsapp_instance_name='demo-sorriso',
    )
    session.add(clinic)

    stages = []
    for order, name in enumerate(STAGES):
        stage = Stage(id=make_id(), clinic_id=clinic.id, name=name, order=order)
        session.add(stage)
        stages.append(stage)

    leads = []
    for entry in LEADS:
        lead = Lead(
            id=make_id(),
            clinic_id=clinic.id,
            stage_id=stages[entry['stage']].id,
            name=entry['name'],
            origin=entry['origin'],
        )
        session.add(lead)
        leads.append(lead)

    session.add(Message(
        id=make_id(),
        clinic_id=clinic.id,
        lead_id=leads[0].id,
        content='Oi! Vi o anúncio do clareamento, ainda tem horário essa semana?',
        sent_by='lead',
    ))

    today = date.today()
    session.add(AIReport(
        id=make_id(),
        clinic_id=clinic.id,
        start_date=today - timedelta(days=30),
        end_date=today,
        delivery_method='in_app',
    ))
    session.commit()

    print(f'  Clinic:  {clinic.id}')
    print(f'  Stages:  {len(stages)}')
    return clinic, leads


def resolve_seeded_leads(clinic, leads):
    """Run the activation resolver so the seeded leads carry a stored AI state."""
    store = get_store()
    for lead in leads:
        enabled = resolve_ai_enabled(lead.id, clinic.id, store=store)
        print(f'  Lead {lead.name:<18} origin={lead.origin!r:<26} ai={enabled}')


def clear_seeded_data(session):
    """Remove all seeded clinics with their stages, leads, messages and reports."""
    clinic_ids = [c.id for c in session.query(Clinic).filter(Clinic.id.like(f'{SEED_PREFIX}%')).all()]

    if not clinic_ids:
        print('No seeded data found.')
        return

    # Leads first: stage_id is ON DELETE RESTRICT
    session.query(Message).filter(Message.clinic_id.in_(clinic_ids)).delete(synchronize_session=False)
    deleted_leads = session.query(Lead).filter(Lead.clinic_id.in_(clinic_ids)).delete(synchronize_session=False)
    session.query(AIReport).filter(AIReport.clinic_id.in_(clinic_ids)).delete(synchronize_session=False)
    session.query(Stage).filter(Stage.clinic_id.in_(clinic_ids)).delete(synchronize_session=False)
    deleted_clinics = session.query(Clinic).filter(Clinic.id.in_(clinic_ids)).delete(synchronize_session=False)
    session.commit()

    print(f'Cleared {deleted_clinics} clinics, {deleted_leads} leads.')


def main():
    parser = argparse.ArgumentParser(description='Seed a demo clinic')
    parser.add_argument('--clear', action='store_true', help='Clear seeded data before (or instead of) seeding')
    parser.add_argument('--clear-only', action='store_true', help='Only clear, do not re-seed')
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        # Ensure tables exist (for SQLite local dev)
        Base.metadata.create_all(engine)

        session = get_session()
        try:
            if args.clear or args.clear_only:
                clear_seeded_data(session)
                if args.clear_only:
                    return

            print('Seeding demo clinic...')
            clinic, leads = seed_clinic(session)
        except Exception as e:
            session.rollback()
            print(f'Error: {e}')
            raise
        finally:
            session.close()

        resolve_seeded_leads(clinic, leads)
        print(f'\nDone! Try GET /api/clinics/{clinic.id}/stages')


if __name__ == '__main__':
    main()
