import getpass

import psycopg2
from dotenv import load_dotenv

from culinary_market.app.auth import CredentialService, check_password_strength, is_valid_email
from culinary_market.app.entitlements import AccountRole
from culinary_market.app.services.accounts import DuplicateAccountError, create_account
from culinary_market.config import load_app_config

load_dotenv()


def main():
    config = load_app_config()
    email = input("Email: ").strip().lower()
    if not is_valid_email(email):
        print("Invalid email format.")
        return
    password = getpass.getpass("Password: ")
    strength = check_password_strength(password)
    if not strength.valid:
        print(strength.message)
        return
    raw_role = input("Role [CLIENT/PROVIDER/ADMIN] (CLIENT): ").strip().upper() or AccountRole.CLIENT.value
    try:
        role = AccountRole(raw_role)
    except ValueError:
        print(f"Unknown role: {raw_role}")
        return

    credentials = CredentialService(config.jwt_secret_key)
    conn = psycopg2.connect(**config.db_settings)
    try:
        account = create_account(
            email=email,
            password_hash=credentials.hash_password(password),
            role=role,
            conn=conn,
        )
        conn.commit()
    except DuplicateAccountError:
        conn.rollback()
        print("An account with this email already exists; nothing changed.")
        return
    finally:
        conn.close()
    print(f"Done. Created {account.role.value} account #{account.id} for {account.email}.")


if __name__ == "__main__":
    main()
