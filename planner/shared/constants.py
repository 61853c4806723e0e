"""Constantes partagées pour l'application."""

# Collections MongoDB
TEMPLATES = "schedule_templates"
ACTIVITIES = "schedule_activities"
INSTANCES = "schedule_instances"
PROGRESS = "activity_progress"
SNAPSHOTS = "weekly_snapshots"
ROLLOVER_RUNS = "rollover_runs"

# Gabarits
DEFAULT_TEMPLATE_WEEKS = 4  # durée par défaut quand aucune date de fin n'est fournie
MIN_TEMPLATE_NAME_LENGTH = 3

# Scoring
TIME_BONUS_POINTS = 2  # terminé plus vite que la durée estimée
AFFECT_BONUS_POINTS = 1  # ressenti après activité >= AFFECT_BONUS_THRESHOLD
AFFECT_BONUS_THRESHOLD = 4
AFFECT_SCALE = (1, 5)
DEFAULT_PASSING_SCORE = 70.0

# Rollover
DEFAULT_BATCH_SIZE = 25
RESET_WARNING_DAYS = 6  # dernière bascule plus ancienne : warning
RESET_ERROR_DAYS = 8  # dernière bascule plus ancienne : error
RESET_OFFSET_MINUTES = 1  # bascule planifiée le lundi à 00:01
