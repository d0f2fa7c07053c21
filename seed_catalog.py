"""Default subjects, prompt templates and achievements.

Seeding is idempotent: rows are matched by name (subjects, achievements) or
by subject + title (prompts) and never overwritten.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime

logger = logging.getLogger(__name__)

ALL_GRADES = ["elementary", "middle", "high", "college"]

SUBJECTS = [
    # (name, description, icon, color, grade_levels)
    ("Mathematics", "Numbers, algebra, geometry, and problem-solving", "calculator", "#FF6B6B", ALL_GRADES),
    ("Science", "Physics, chemistry, biology, and earth sciences", "atom", "#4ECDC4", ALL_GRADES),
    ("English", "Reading, writing, grammar, and literature", "book-open", "#45B7D1", ALL_GRADES),
    ("History", "World history, civics, and social studies", "scroll", "#96CEB4", ALL_GRADES),
    ("Computer Science", "Programming, algorithms, and technology", "monitor", "#FFEAA7",
     ["middle", "high", "college"]),
    ("Art", "Visual arts, music, and creative expression", "palette", "#DDA0DD", ALL_GRADES),
]

PROMPTS = [
    {
        "subject": "Mathematics",
        "title": "Step-by-Step Math Problem Solver",
        "description": "Guides students through mathematical problems with detailed explanations",
        "prompt_template": (
            "You are a patient and encouraging math tutor. The student has submitted this problem: "
            "{user_input}\n\n"
            "Please provide:\n"
            "1. A clear, step-by-step solution\n"
            "2. Explanation of each mathematical concept used\n"
            "3. Tips for solving similar problems\n"
            "4. A practice problem for reinforcement\n\n"
            "Make your explanation appropriate for a {grade_level} student. Use encouraging "
            "language and check for understanding at each step."
        ),
        "learning_objectives": ["problem-solving", "mathematical reasoning", "step-by-step thinking"],
        "keywords": ["math", "algebra", "geometry", "arithmetic", "problem-solving"],
    },
    {
        "subject": "Science",
        "title": "Science Concept Explorer",
        "description": "Helps students understand scientific concepts through inquiry-based learning",
        "prompt_template": (
            "You are an enthusiastic science teacher. The student is asking about: {user_input}\n\n"
            "Please provide:\n"
            "1. A clear explanation of the scientific concept\n"
            "2. Real-world examples and applications\n"
            "3. Simple experiments or observations they can try\n"
            "4. Connection to other scientific principles\n"
            "5. Questions to encourage further exploration\n\n"
            "Use age-appropriate language for a {grade_level} student and encourage scientific curiosity."
        ),
        "learning_objectives": ["scientific inquiry", "conceptual understanding", "real-world connections"],
        "keywords": ["science", "physics", "chemistry", "biology", "experiments"],
    },
    {
        "subject": "English",
        "title": "Writing and Reading Comprehension Guide",
        "description": "Supports students in developing reading and writing skills",
        "prompt_template": (
            "You are a supportive English teacher. The student needs help with: {user_input}\n\n"
            "Please provide:\n"
            "1. Clear guidance on the topic\n"
            "2. Examples and models when appropriate\n"
            "3. Specific strategies for improvement\n"
            "4. Encouragement and positive feedback\n"
            "5. Next steps for continued learning\n\n"
            "Adapt your language and examples for a {grade_level} student. Focus on building "
            "confidence in communication skills."
        ),
        "learning_objectives": ["reading comprehension", "writing skills", "communication"],
        "keywords": ["english", "writing", "reading", "grammar", "literature"],
    },
]

ACHIEVEMENTS = [
    # (name, description, icon, category, rarity, criteria, points_reward)
    ("First Steps", "Complete your first problem", "star", "getting_started", "common",
     {"problems_solved": 1}, 10),
    ("Problem Solver", "Solve 10 problems", "target", "progress", "common",
     {"problems_solved": 10}, 50),
    ("Dedicated Learner", "Solve 50 problems", "trophy", "progress", "rare",
     {"problems_solved": 50}, 200),
    ("Math Whiz", "Solve 25 math problems", "calculator", "subject", "rare",
     {"subject": "Mathematics", "problems_solved": 25}, 150),
    ("Science Explorer", "Solve 25 science problems", "atom", "subject", "rare",
     {"subject": "Science", "problems_solved": 25}, 150),
    ("Streak Master", "Maintain a 7-day learning streak", "flame", "consistency", "epic",
     {"streak_days": 7}, 300),
    ("Speed Demon", "Solve 5 problems in one day", "zap", "performance", "rare",
     {"problems_per_session": 5}, 100),
    ("Perfectionist", "Get 10 problems rated 5 stars", "award", "quality", "epic",
     {"five_star_ratings": 10}, 250),
    ("Learning Legend", "Reach level 10", "crown", "milestone", "legendary",
     {"level": 10}, 500),
    ("Knowledge Seeker", "Study for 10 hours total", "clock", "dedication", "rare",
     {"study_hours": 10}, 200),
    ("Subject Master", "Complete problems in 5 different subjects", "book-open", "exploration", "epic",
     {"subjects_count": 5}, 400),
]


def seed_all() -> dict:
    """Insert default catalog rows that are missing. Returns counts inserted."""
    from database import write_transaction

    now = datetime.now().isoformat()
    counts = {"subjects": 0, "prompts": 0, "achievements": 0}
    with write_transaction() as db:
        for name, description, icon, color, grades in SUBJECTS:
            cur = db.execute(
                "INSERT OR IGNORE INTO subjects (name, description, icon, color, grade_levels, "
                "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (name, description, icon, color, json.dumps(grades), now, now),
            )
            counts["subjects"] += cur.rowcount

        for prompt in PROMPTS:
            subject = db.execute(
                "SELECT id FROM subjects WHERE name = ?", (prompt["subject"],)
            ).fetchone()
            exists = db.execute(
                "SELECT 1 FROM prompt_templates WHERE subject_id = ? AND title = ?",
                (subject["id"], prompt["title"]),
            ).fetchone()
            if exists:
                continue
            db.execute(
                "INSERT INTO prompt_templates (subject_id, title, description, prompt_template, "
                "input_type, difficulty_level, grade_levels, learning_objectives, keywords, "
                "created_at, updated_at) VALUES (?, ?, ?, ?, 'any', 'medium', ?, ?, ?, ?, ?)",
                (subject["id"], prompt["title"], prompt["description"], prompt["prompt_template"],
                 json.dumps(["elementary", "middle", "high"]),
                 json.dumps(prompt["learning_objectives"]), json.dumps(prompt["keywords"]),
                 now, now),
            )
            counts["prompts"] += 1

        for order, (name, description, icon, category, rarity, criteria, reward) in enumerate(ACHIEVEMENTS):
            cur = db.execute(
                "INSERT OR IGNORE INTO achievements (name, description, icon, category, rarity, "
                "criteria, points_reward, sort_order) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (name, description, icon, category, rarity, json.dumps(criteria), reward, order),
            )
            counts["achievements"] += cur.rowcount

    if any(counts.values()):
        logger.info("Seeded default catalog: %s", counts)
    return counts


if __name__ == "__main__":
    from app import create_app
    from database import init_db, run_migrations

    app = create_app()
    with app.app_context():
        init_db()
        run_migrations()
        n = seed_all()
    print(f"  Seeded: {n}")
