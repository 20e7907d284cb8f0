# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    get_database_url,
    get_email_config,
    reset_vault_client,
)
from clients.postgres_client import PostgresClient
from clients.email_client import EmailGatewayClient, EmailGatewayError
