#!/usr/bin/env python3
"""Readers CLI - book search, favorites and reviews."""
import argparse
import asyncio
import getpass
import sys
import json
from tabulate import tabulate
from readers.app_state import AppState
from readers.async_client import AsyncOpenLibraryClient
from readers.client import OpenLibraryClient
from readers.config import Config
from readers.database import RemoteStore
from readers.errors import AuthError, CatalogError, StoreError
from readers.favorites import FavoritesCache, SyncQueue
from readers.profile_images import ProfileImageCache
from readers.search import SearchPipeline
from readers.storage import LocalStore
from readers.urls import WORKS_PREFIX, normalize_work_id
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def open_store(config: Config, required: bool = True):
    """Connect to the remote store; optional commands continue without it."""
    try:
        store = RemoteStore(config.DATABASE_URL)
        store.init_schema()
        return store
    except StoreError as e:
        if required:
            raise
        logger.warning(f"Remote store unavailable, working locally: {e}")
        return None


async def build_app(config: Config, store) -> AppState:
    """Wire local storage, favorites sync and the session around a store."""
    storage = LocalStore(config.DATA_DIR)
    queue = SyncQueue(
        store,
        max_retries=config.SYNC_MAX_RETRIES,
        retry_delay=config.SYNC_RETRY_DELAY
    )
    favorites = FavoritesCache(storage, sync_queue=queue)
    app = AppState(
        store,
        favorites,
        storage=storage,
        profile_images=ProfileImageCache(config.DATA_DIR)
    )
    await app.restore_session()
    return app


def work_key(book_id: str) -> str:
    """Favorites are keyed like search results: /works/<id>."""
    return f"{WORKS_PREFIX}{normalize_work_id(book_id)}"


def catalog_client(config: Config) -> OpenLibraryClient:
    return OpenLibraryClient(
        base_url=config.CATALOG_BASE_URL,
        covers_base_url=config.COVERS_BASE_URL,
        timeout=config.DEFAULT_TIMEOUT,
        max_retries=config.DEFAULT_MAX_RETRIES,
        limit=config.SEARCH_LIMIT
    )


async def search_books_async(args, config: Config):
    """Search through the debounced pipeline."""
    async with AsyncOpenLibraryClient(
        base_url=config.CATALOG_BASE_URL,
        covers_base_url=config.COVERS_BASE_URL,
        timeout=config.DEFAULT_TIMEOUT,
        limit=config.SEARCH_LIMIT
    ) as client:
        pipeline = SearchPipeline(
            client,
            debounce=config.SEARCH_DEBOUNCE_MS / 1000,
            min_length=config.SEARCH_MIN_LENGTH
        )
        pipeline.subscribe(
            lambda state: logger.debug(f"loading={state.is_loading} results={len(state.results)}")
        )

        logger.info(f"Searching for: {args.query}")
        pipeline.set_query(args.query)
        await pipeline.wait_idle()
        pipeline.close()

        if pipeline.error_message:
            logger.error(f"❌ {pipeline.error_message}")
            return

        favorites = FavoritesCache(LocalStore(config.DATA_DIR))
        display_books(pipeline.results[:args.limit], args.format, favorites)


def search_books_sync(args, config: Config):
    """Search for books using sync client."""
    if len(args.query.strip()) < config.SEARCH_MIN_LENGTH:
        logger.error(f"Query must be at least {config.SEARCH_MIN_LENGTH} characters")
        return

    with catalog_client(config) as client:
        try:
            books = client.search(args.query.strip())
        except CatalogError as e:
            logger.error(f"❌ {e.message}")
            return

    logger.info(f"Found {len(books)} books")
    favorites = FavoritesCache(LocalStore(config.DATA_DIR))
    display_books(books[:args.limit], args.format, favorites)


def show_details(args, config: Config):
    with catalog_client(config) as client:
        try:
            book = client.fetch_details(args.book_id)
        except CatalogError as e:
            logger.error(f"❌ {e.message}")
            return

    display_books([book], args.format)
    if book.description and args.format == "table":
        print(f"\n{book.description}\n")


def display_books(books, format_type: str, favorites=None):
    """Display books in specified format."""
    if format_type == "table":
        headers = ["ID", "Title", "Author", "Year", "ISBN"]
        if favorites is not None:
            headers.append("★")
        rows = []
        for book in books:
            row = [
                book.id,
                book.title[:50] + "..." if len(book.title) > 50 else book.title,
                book.author[:30] + "..." if len(book.author) > 30 else book.author,
                book.formatted_year or "Unknown",
                book.isbn or "N/A"
            ]
            if favorites is not None:
                row.append("★" if favorites.contains(book.id) else "")
            rows.append(row)
        print("\n" + tabulate(rows, headers=headers, tablefmt="grid"))

    elif format_type == "json":
        print(json.dumps([book.to_dict() for book in books], indent=2))

    elif format_type == "compact":
        for i, book in enumerate(books, 1):
            print(f"{i}. {book.display_title} - {book.author}")


async def manage_favorites(args, config: Config):
    """List, add or remove local favorites; mirror when signed in."""
    store = open_store(config, required=args.remote)
    app = None
    try:
        if store is None:
            favorites = FavoritesCache(LocalStore(config.DATA_DIR))
        else:
            app = await build_app(config, store)
            favorites = app.favorites

        if args.action == "add":
            with catalog_client(config) as client:
                try:
                    book = client.fetch_details(work_key(args.book_id))
                except CatalogError as e:
                    logger.error(f"❌ {e.message}")
                    return
            if favorites.add(book):
                print(f"✅ Added '{book.title}' to favorites")
            else:
                print(f"'{book.title}' is already a favorite")

        elif args.action == "remove":
            if favorites.remove(work_key(args.book_id)):
                print(f"✅ Removed {args.book_id} from favorites")
            else:
                print(f"{args.book_id} is not a favorite")

        elif args.action == "sync":
            if app is None or not app.is_authenticated:
                logger.error("Sign in to sync favorites")
                return
            print(f"Queued {favorites.sync_all()} favorites for sync")

        if args.remote:
            if app is None or not app.is_authenticated:
                raise AuthError("Not signed in")
            remote = await app.load_remote_favorites()
            rows = [[f.book_id, f.date_added.strftime("%Y-%m-%d %H:%M")] for f in remote]
            print("\n" + tabulate(rows, headers=["Book", "Added"], tablefmt="grid"))
        elif args.action == "list":
            display_books(favorites.books, args.format)

    finally:
        if app is not None:
            await app.aclose()
        if store is not None:
            store.close()


async def manage_account(args, config: Config):
    store = open_store(config)
    app = None
    try:
        app = await build_app(config, store)

        if args.command == "signup":
            password = getpass.getpass("Password: ")
            user = await app.sign_up(args.email, password, args.display_name)
            print(f"✅ Welcome, {user.display_name}")

        elif args.command == "signin":
            password = getpass.getpass("Password: ")
            user = await app.sign_in(args.email, password)
            if user is None:
                logger.error("❌ Signed in, but the profile could not be loaded")
                return
            print(f"✅ Signed in as {user.display_name}")

        elif args.command == "signout":
            app.sign_out()
            print("Signed out (local favorites kept)")

        elif args.command == "whoami":
            user = app.current_user
            if user is None:
                print("Not signed in")
                return
            print(tabulate(
                [
                    ["ID", user.id],
                    ["Name", user.display_name],
                    ["Email", user.email],
                    ["Bio", user.bio or ""],
                    ["Image", user.profile_image_url or ""],
                    ["Joined", user.date_joined.strftime("%Y-%m-%d")],
                    ["Favorites", app.favorites.count],
                ],
                tablefmt="simple"
            ))

        elif args.command == "profile":
            user = app.current_user
            if user is None:
                raise AuthError("Not signed in")
            if args.image:
                with open(args.image, "rb") as f:
                    user = await app.update_profile_image(f.read())
            if args.name or args.bio is not None:
                user = await app.update_profile(args.name or user.display_name, args.bio)
            print(f"✅ Profile updated for {user.display_name}")

    finally:
        if app is not None:
            await app.aclose()
        store.close()


async def manage_reviews(args, config: Config):
    store = open_store(config)
    app = None
    try:
        app = await build_app(config, store)

        if args.action == "add":
            review = await app.submit_review(args.book_id, args.rating, args.text)
            print(f"✅ Saved {review.rating}★ review of {review.book_id}")
            return

        if args.mine:
            reviews = await app.my_reviews()
        else:
            reviews = await app.book_reviews(args.book_id)

        rows = [
            [
                r.book_id,
                r.user_id,
                "★" * r.rating,
                r.review_text[:60] + "..." if len(r.review_text) > 60 else r.review_text,
                r.date_created.strftime("%Y-%m-%d")
            ]
            for r in reviews
        ]
        print("\n" + tabulate(rows, headers=["Book", "User", "Rating", "Review", "Date"], tablefmt="grid"))

    finally:
        if app is not None:
            await app.aclose()
        store.close()


def show_stats(args, config: Config):
    """Show remote store statistics."""
    store = open_store(config)

    try:
        stats = store.get_stats()

        print("\n" + "=" * 50)
        print("REMOTE STORE STATISTICS")
        print("=" * 50)
        print(f"Users: {stats['total_users']}")
        print(f"Favorites: {stats['total_favorites']}")
        print(f"Reviews: {stats['total_reviews']}")
        print("=" * 50 + "\n")

    finally:
        store.close()


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Readers - discover books, keep favorites, write reviews",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Search with defaults
  %(prog)s search "great gatsby"

  # Debounced async search, compact output
  %(prog)s search "dune" --async --format compact

  # Favorites
  %(prog)s favorites add OL468431W
  %(prog)s favorites list

  # Reviews
  %(prog)s signin me@example.com
  %(prog)s review add OL468431W 5 "Loved it"
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Search command
    search_parser = subparsers.add_parser("search", help="Search for books")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--limit", type=int, default=20, help="Max results (default: 20)")
    search_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")
    search_parser.add_argument("--async", dest="use_async", action="store_true", help="Use debounced async pipeline")

    # Details command
    details_parser = subparsers.add_parser("details", help="Show one book")
    details_parser.add_argument("book_id", help="Work id, e.g. OL468431W")
    details_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")

    # Favorites command
    fav_parser = subparsers.add_parser("favorites", help="Manage favorite books")
    fav_parser.add_argument("action", choices=["list", "add", "remove", "sync"], help="Action")
    fav_parser.add_argument("book_id", nargs="?", help="Work id (add/remove)")
    fav_parser.add_argument("--remote", action="store_true", help="List favorites stored remotely")
    fav_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")

    # Account commands
    signup_parser = subparsers.add_parser("signup", help="Create an account")
    signup_parser.add_argument("email")
    signup_parser.add_argument("display_name")
    signin_parser = subparsers.add_parser("signin", help="Sign in")
    signin_parser.add_argument("email")
    subparsers.add_parser("signout", help="Sign out")
    subparsers.add_parser("whoami", help="Show the signed-in user")
    profile_parser = subparsers.add_parser("profile", help="Update your profile")
    profile_parser.add_argument("--name", help="Display name")
    profile_parser.add_argument("--bio", help="Short bio")
    profile_parser.add_argument("--image", help="Path to a profile picture")

    # Review command
    review_parser = subparsers.add_parser("review", help="Write or read reviews")
    review_parser.add_argument("action", choices=["add", "list"], help="Action")
    review_parser.add_argument("book_id", nargs="?", help="Work id")
    review_parser.add_argument("rating", nargs="?", type=int, help="1-5 (add)")
    review_parser.add_argument("text", nargs="?", help="Review text (add)")
    review_parser.add_argument("--mine", action="store_true", help="List your own reviews")

    # Stats command
    subparsers.add_parser("stats", help="Show remote store statistics")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "favorites" and args.action in ("add", "remove") and not args.book_id:
        parser.error("favorites add/remove needs a book_id")
    if args.command == "review":
        if args.action == "add" and (not args.book_id or args.rating is None or not args.text):
            parser.error("review add needs book_id, rating and text")
        if args.action == "list" and not (args.book_id or args.mine):
            parser.error("review list needs a book_id or --mine")

    config = Config()

    try:
        if args.command == "search":
            if args.use_async:
                asyncio.run(search_books_async(args, config))
            else:
                search_books_sync(args, config)

        elif args.command == "details":
            show_details(args, config)

        elif args.command == "favorites":
            asyncio.run(manage_favorites(args, config))

        elif args.command in ("signup", "signin", "signout", "whoami", "profile"):
            asyncio.run(manage_account(args, config))

        elif args.command == "review":
            asyncio.run(manage_reviews(args, config))

        elif args.command == "stats":
            show_stats(args, config)

    except (AuthError, StoreError, CatalogError, ValueError) as e:
        logger.error(f"❌ {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("\n⚠️  Interrupted by user")
        sys.exit(0)
    except Exception as e:
        logger.error(f"❌ Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
