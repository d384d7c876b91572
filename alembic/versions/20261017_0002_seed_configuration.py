"""Seed default configuration rows

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-17

Blank values fall through to the static settings until an admin sets them.
"""
import uuid
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: Union[str, None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# (key, value, description, category, is_secret)
DEFAULTS = [
    ('API_SERVICE_URL', '', 'Legacy identity API base URL for inter-service communication', 'api', False),
    ('SERVICES_SECRET_KEY', '', 'Shared secret for inter-service calls to the legacy identity API', 'api', True),
    ('TRUSTED_ORIGINS', 'http://localhost:5173,http://localhost:3000,http://localhost:3001',
     'Comma-separated list of trusted origins for CORS', 'cors', False),
    ('ALLOWED_DOMAIN_PATTERNS', '', 'Comma-separated list of allowed domain patterns for CORS', 'cors', False),
    ('GOOGLE_CLIENT_ID', '', 'Google OAuth 2.0 client ID for social authentication', 'social_auth', False),
    ('GOOGLE_CLIENT_SECRET', '', 'Google OAuth 2.0 client secret for social authentication', 'social_auth', True),
    ('FACEBOOK_CLIENT_ID', '', 'Facebook OAuth client ID for social authentication', 'social_auth', False),
    ('FACEBOOK_CLIENT_SECRET', '', 'Facebook OAuth client secret for social authentication', 'social_auth', True),
    ('APPLE_CLIENT_ID', '', 'Apple OAuth client ID for social authentication', 'social_auth', False),
    ('APPLE_CLIENT_SECRET', '', 'Apple OAuth client secret for social authentication', 'social_auth', True),
    ('AUTH_BASE_URL', 'http://localhost:3001', 'Base URL for OAuth redirects and API calls', 'auth', False),
]

configuration = sa.table(
    'configuration',
    sa.column('id', sa.String),
    sa.column('key', sa.String),
    sa.column('value', sa.Text),
    sa.column('description', sa.Text),
    sa.column('category', sa.String),
    sa.column('is_secret', sa.Boolean),
)


def upgrade() -> None:
    op.bulk_insert(
        configuration,
        [
            {
                'id': str(uuid.uuid4()),
                'key': key,
                'value': value,
                'description': description,
                'category': category,
                'is_secret': is_secret,
            }
            for key, value, description, category, is_secret in DEFAULTS
        ],
    )


def downgrade() -> None:
    keys = [row[0] for row in DEFAULTS]
    op.execute(configuration.delete().where(configuration.c.key.in_(keys)))
