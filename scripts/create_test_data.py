#!/usr/bin/env python3
"""
Test Data Script for the Tubely backend.

Seeds a video record owned by a (new or given) user into the configured
MongoDB database and prints a bearer token for that user, so the upload
endpoints can be exercised by hand:

    curl -H "Authorization: Bearer $TOKEN" \\
         -F "thumbnail=@boots.png;type=image/png" \\
         http://localhost:8091/api/thumbnails/$VIDEO_ID

Usage:
    python scripts/create_test_data.py [options]

Options:
    --user-id UUID  Owner of the seeded video (default: a new random UUID)
    --title TEXT    Title of the seeded video
    --count INT     Number of videos to seed (default: 1)
    --hours INT     Token lifetime in hours (default: jwt_expiration_hours)
    --verbose       Display detailed operation logs

Configuration is read from the environment and ``.env`` through
``app.config.Settings`` (MONGODB_URI, MONGODB_DB_NAME, SECRET_KEY, ...).
"""

import argparse
import sys
import uuid

from datetime import UTC, datetime, timedelta

from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, DuplicateKeyError, PyMongoError, ServerSelectionTimeoutError

from app.config import Settings, get_settings
from app.core.auth import create_access_token
from app.core.database import VIDEOS_COLLECTION
from app.models.video import Video


CONNECTION_TIMEOUT_MS = 5000


class TestDataSeeder:
    """Inserts video records with a synchronous pymongo client."""

    __test__ = False

    def __init__(self, settings: Settings, verbose: bool = False) -> None:
        self.settings = settings
        self.verbose = verbose
        self.client: MongoClient | None = None

    def log(self, message: str, level: str = "INFO") -> None:
        if level == "DEBUG" and not self.verbose:
            return
        timestamp = datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S UTC")
        print(f"[{timestamp}] [{level}] {message}")

    def connect(self) -> bool:
        """Connect and ping MongoDB. Returns False when the server is unreachable."""
        self.log(f"Connecting to MongoDB database '{self.settings.mongodb_db_name}'...")
        try:
            self.client = MongoClient(
                self.settings.mongodb_uri,
                serverSelectionTimeoutMS=CONNECTION_TIMEOUT_MS,
                connectTimeoutMS=CONNECTION_TIMEOUT_MS,
                uuidRepresentation="standard",
                tz_aware=True,
            )
            self.client.admin.command("ping")
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            self.log(f"Could not reach MongoDB: {e}", "ERROR")
            return False

        self.log("Connected to MongoDB", "DEBUG")
        return True

    def seed_videos(self, user_id: uuid.UUID, title: str, count: int) -> list[Video]:
        collection = self.client[self.settings.mongodb_db_name][VIDEOS_COLLECTION]
        videos = []
        for index in range(count):
            video_title = title if count == 1 else f"{title} #{index + 1}"
            video = Video(user_id=user_id, title=video_title, description="Seeded for manual testing")
            try:
                collection.insert_one(video.to_document())
            except DuplicateKeyError:
                self.log(f"Video {video.id} already exists, skipping", "WARNING")
                continue
            self.log(f"Created video {video.id} ('{video_title}')", "DEBUG")
            videos.append(video)
        return videos

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None


def parse_arguments() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Seed Tubely video records and print a bearer token",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python scripts/create_test_data.py
    python scripts/create_test_data.py --count 3 --title "Boots"
    python scripts/create_test_data.py --user-id 0b1c2d3e-4f50-4617-8293-a4b5c6d7e8f9
        """,
    )
    parser.add_argument("--user-id", type=uuid.UUID, default=None, help="Owner UUID (default: random)")
    parser.add_argument("--title", default="Boots unboxing", help="Title of the seeded video")
    parser.add_argument("--count", type=int, default=1, help="Number of videos to seed (default: 1)")
    parser.add_argument("--hours", type=int, default=None, help="Token lifetime in hours")
    parser.add_argument("--verbose", action="store_true", help="Display detailed operation logs")
    return parser.parse_args()


def main() -> int:
    """
    Main entry point for seeding.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    args = parse_arguments()
    if args.count < 1:
        print("--count must be at least 1", file=sys.stderr)
        return 2

    settings = get_settings()
    seeder = TestDataSeeder(settings, verbose=args.verbose)
    user_id = args.user_id or uuid.uuid4()

    try:
        if not seeder.connect():
            return 1

        videos = seeder.seed_videos(user_id, args.title, args.count)
        if not videos:
            seeder.log("No videos were created", "ERROR")
            return 1

        expires_in = timedelta(hours=args.hours) if args.hours else None
        token = create_access_token(user_id, settings, expires_in=expires_in)

        print()
        print(f"USER_ID={user_id}")
        for video in videos:
            print(f"VIDEO_ID={video.id}")
        print(f"TOKEN={token}")
        return 0

    except KeyboardInterrupt:
        seeder.log("Operation cancelled by user", "WARNING")
        return 130

    except PyMongoError as e:
        seeder.log(f"MongoDB error: {e}", "ERROR")
        return 1

    finally:
        seeder.close()


if __name__ == "__main__":
    sys.exit(main())
