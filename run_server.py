"""Run one greenhouse service (environment, control, or both) with the Flask server."""

import argparse
import os
import sys

if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Greenhouse control pipeline server")
    parser.add_argument(
        "--service",
        choices=("environment", "control", "all"),
        default=os.environ.get("GREENHOUSE_SERVICE_ROLE", "all"),
        help="Which half of the pipeline this process runs",
    )
    parser.add_argument("--host", default=os.environ.get("FLASK_RUN_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=None, help="Defaults to 8081 (environment) or 8082 (control)")
    args = parser.parse_args(argv)

    os.environ["GREENHOUSE_SERVICE_ROLE"] = args.service
    port = args.port or int(os.environ.get("FLASK_RUN_PORT", 8081 if args.service == "environment" else 8082))

    from greenhouse import create_app

    app = create_app(start_consumers=args.service in ("control", "all"))

    print(f"Greenhouse {args.service} service starting on http://{args.host}:{port}")
    print("Press Ctrl+C to stop\n")
    try:
        app.run(host=args.host, port=port, debug=False, use_reloader=False, threaded=True)
    except KeyboardInterrupt:
        print("\nServer stopped by user")


if __name__ == "__main__":
    main()
