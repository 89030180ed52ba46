import logging

import psycopg2
from dotenv import load_dotenv

from culinary_market import app_context
from culinary_market.app.services.billing import get_billing_service
from culinary_market.config import load_app_config

load_dotenv()


def main():
    config = load_app_config()
    logging.basicConfig(level=config.log_level)
    app_context.configure(get_conn=lambda: psycopg2.connect(**config.db_settings))

    expired = get_billing_service().reconcile_expired_subscriptions()
    if expired:
        print(f"Done. Marked {len(expired)} subscription(s) as EXPIRED: {', '.join(map(str, expired))}")
    else:
        print("Done. No lapsed subscriptions found.")


if __name__ == "__main__":
    main()
