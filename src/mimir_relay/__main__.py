# src/mimir_relay/__main__.py
import argparse
import asyncio

from mimir_relay.client import DEFAULT_URL, ChatSession


async def _repl(url: str) -> None:
    session = ChatSession(url)
    print("Mimir Chat (ctrl-d to quit)")
    while True:
        try:
            line = input("você> ")
        except EOFError:
            print()
            return
        reply = await session.send(line)
        if reply is not None:
            print(f"mimir> {reply}")


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(prog="mimir-relay", description="Mimir chat relay")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the relay HTTP server")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")

    chat = sub.add_parser("chat", help="talk to a running relay from the terminal")
    chat.add_argument("--url", default=DEFAULT_URL)

    args = parser.parse_args(argv)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("mimir_relay.app:app", host=args.host, port=args.port, reload=args.reload)
    else:
        asyncio.run(_repl(args.url))


if __name__ == "__main__":
    main()
