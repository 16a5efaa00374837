import argparse
from utils.config import load_config
from .database import DatabaseConnection

def main():
    parser = argparse.ArgumentParser(description="Create the snipe position tables")
    parser.add_argument("--config", default="config.yaml", help="Path to the YAML config file")
    args = parser.parse_args()

    db = DatabaseConnection(load_config(args.config).storage.database_url)
    if not db.test_connection():
        raise SystemExit(1)
    db.init_db()
    print(f"Position tables created at {db.engine_label}")

if __name__ == "__main__":
    main()
