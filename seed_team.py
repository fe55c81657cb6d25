"""
Create a team and its first member.

Usage: python seed_team.py "Acme" acme user-123 [owner|admin|member]
"""
import asyncio
import sys

from src.database import get_database, close_database
from src.database.repositories import get_team_repository


async def seed_team(name: str, slug: str, user_id: str, role: str = "owner"):
    """Create the team (if the slug is new) and add ``user_id`` to it."""

    db = get_database()
    if not await db.initialize():
        print("❌ Database not configured (set DATABASE_URL)")
        return

    team_repo = get_team_repository()

    try:
        team = await team_repo.get_team(slug)
        if team:
            print(f"  ✅ Team {slug} already exists (ID: {team.id})")
        else:
            team = await team_repo.create_team(name, slug=slug)
            print(f"  ✅ Created team {name} (ID: {team.id})")

        membership = await team_repo.get_membership(team.id, user_id)
        if membership:
            print(f"  ✅ {user_id} is already a member with role: {membership.role}")
        else:
            await team_repo.add_member(team.id, user_id, role=role)
            print(f"  ✅ Added {user_id} as {role}")
    except Exception as e:
        print(f"  ❌ Error seeding team {slug}: {e}")
    finally:
        await close_database()

    print("\n✅ Team seeding complete!")


if __name__ == "__main__":
    if len(sys.argv) < 4:
        print(__doc__.strip())
        sys.exit(1)
    asyncio.run(seed_team(*sys.argv[1:5]))
