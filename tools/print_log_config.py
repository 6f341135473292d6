import json
import sys

from dotenv import load_dotenv

from consultdesk.app_logging import log_settings


def main() -> None:
    load_dotenv()
    sys.stdout.write(json.dumps(log_settings().as_dict(), indent=2) + "\n")


if __name__ == "__main__":
    main()
