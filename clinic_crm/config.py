"""
Centralized configuration — all env vars, constants, ad-source keywords.
"""
import os


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis (realtime change feed + RQ) ────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Auth ─────────────────────────────────────────────────────────────────────
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-change-me')
API_TOKEN = os.getenv('API_TOKEN')

# ── AI report generator (external workflow webhook) ─────────────────────────
REPORT_WEBHOOK_URL = os.getenv('REPORT_WEBHOOK_URL')
REPORT_WEBHOOK_SECRET = os.getenv('REPORT_WEBHOOK_SECRET')
REPORT_TOKEN_TTL = 3600  # seconds

# ── Chat messages (WhatsApp gateway webhook) ────────────────────────────────
MESSAGE_WEBHOOK_URL = os.getenv('MESSAGE_WEBHOOK_URL')
MESSAGE_WEBHOOK_SECRET = os.getenv('MESSAGE_WEBHOOK_SECRET')
MESSAGE_DELIVERY_ATTEMPTS = 3
MESSAGE_TOKEN_TTL = 3600  # seconds

# ── Slack notifications ──────────────────────────────────────────────────────
SLACK_WEBHOOK_URL = os.getenv('SLACK_WEBHOOK_URL')

# ── Lead source classification ───────────────────────────────────────────────
# Lower-case substrings; an origin containing any of them came from paid ads.
# Keep these specific enough that they never occur inside ordinary words.
AD_SOURCE_KEYWORDS = (
    'facebook',
    'instagram',
    'meta ads',
    'google ads',
    'tiktok',
    'anuncio',
    'anúncio',
    'campanha',
    'campaign',
    'advertisement',
    'patrocinado',
)

# Short ad terms matched as whole words only ("ads" must not fire on "leads").
AD_SOURCE_WORDS = (
    'ad',
    'ads',
    'paid',
    'pago',
)

# ── Clinic AI settings ───────────────────────────────────────────────────────
AI_OPERATING_MODES = ['24/7', 'horario_comercial']

# ── AI report lifecycle ──────────────────────────────────────────────────────
REPORT_STATUSES = [
    'pending',
    'processing',
    'completed',
    'failed',
    'cancelled',
]
REPORT_DELIVERY_METHODS = ['in_app', 'whatsapp']
