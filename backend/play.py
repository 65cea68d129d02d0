#!/usr/bin/env python3
"""Console front end for Rubber-Duck Trivia.

Usage:
    python play.py topics                        # List topics on the server
    python play.py play --topic Python           # Play a round
    python play.py play --topic Python --server http://localhost:3000

In-game commands:
    1..n        choose an answer
    h           hint from the duck (no spoilers)
    c <text>    chat with the duck about this question
    e           explain my answer (after answering)
    n           next question (after answering)
    q           exit to the topic picker
"""

import argparse
import asyncio
import logging
import sys

from config import get_settings
from game_controller import Action, GameStatus, QuizController, QuizStartError
from logger import setup_logging
from quiz_client import QuizClient, QuizClientError


def render_question(controller: QuizController) -> None:
    session = controller.session
    question = controller.current_question
    print(f"\nQuestion {session.current_index + 1} of {session.total}   Score: {session.score}")
    print(f"  {question.question}")
    for i, choice in enumerate(question.choices, start=1):
        marker = ""
        if controller.answered and session.last_user_answer_index == i - 1:
            marker = "  ◀ your answer"
        print(f"   {i}. {choice}{marker}")


def render_new_chat(controller: QuizController, seen: int) -> int:
    for entry in controller.chat_log[seen:]:
        print(f"  {entry.sender}: {entry.text}")
    return len(controller.chat_log)


def parse_command(line: str):
    """Map one line of input onto (Action, arg), or None if unrecognised."""
    line = line.strip()
    if not line:
        return None
    if line.isdigit():
        return Action.SELECT, int(line) - 1
    cmd, _, rest = line.partition(" ")
    cmd = cmd.lower()
    if cmd == "h":
        return Action.HINT, None
    if cmd == "c":
        return Action.CHAT, rest
    if cmd == "e":
        return Action.EXPLAIN, None
    if cmd == "n":
        return Action.ADVANCE, None
    if cmd == "q":
        return Action.EXIT, None
    return None


async def play(topic: str, server_url: str) -> int:
    client = QuizClient(server_url)
    controller = QuizController(client)
    try:
        try:
            await controller.dispatch(Action.START, topic)
        except QuizStartError as e:
            print(f"\n⚠️  {e}\n")
            return 1

        seen = 0
        shown_index = None
        while controller.status is GameStatus.IN_PROGRESS:
            if shown_index != controller.session.current_index:
                shown_index = controller.session.current_index
                seen = 0
                render_question(controller)

            line = await asyncio.to_thread(input, "> ")
            parsed = parse_command(line)
            if parsed is None:
                print("  Commands: 1..n, h, c <text>, e, n, q")
                continue

            action, arg = parsed
            if action is Action.ADVANCE and not controller.answered:
                print("  Answer first.")
                continue
            answered_before = controller.answered
            await controller.dispatch(action, arg)
            if action is Action.EXIT:
                print("\n👋 Back to topic selection.\n")
                return 0
            if action is Action.SELECT and controller.answered and not answered_before:
                print(f"  Score: {controller.score}")
            seen = render_new_chat(controller, seen)

        score, total = controller.final_score
        print(f"\n🏁 Your score: {score} / {total}\n")
        return 0
    except (EOFError, KeyboardInterrupt):
        controller.exit()
        return 0
    finally:
        await client.aclose()


async def list_topics(server_url: str) -> int:
    client = QuizClient(server_url)
    try:
        topics = await client.fetch_topics()
    except QuizClientError as e:
        print(f"\n❌ {e}\n")
        return 1
    finally:
        await client.aclose()

    print(f"\n📚 Topics on {server_url}:\n")
    for name, count in topics:
        print(f"   {name:25} {count} questions")
    print()
    return 0


def main(argv=None) -> int:
    # Game events go to game_events.jsonl; the console stays for the game itself
    setup_logging(console_level=logging.WARNING)
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Rubber-Duck Trivia console client")
    parser.add_argument("--server", default=settings.server_url, help="Quiz server base URL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("topics", help="List available topics")
    play_parser = subparsers.add_parser("play", help="Play a round")
    play_parser.add_argument("--topic", default="Python", help="Topic to play")

    args = parser.parse_args(argv)
    if args.command == "topics":
        return asyncio.run(list_topics(args.server))
    return asyncio.run(play(args.topic, args.server))


if __name__ == "__main__":
    sys.exit(main())
