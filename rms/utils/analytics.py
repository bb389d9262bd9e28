from __future__ import annotations

import asyncio
import logging
import math
import re
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy import distinct, func, select
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from rms.core.cache import CacheTag, StatsCache
from rms.core.errors import NotFound, ValidationFailed
from rms.db.models.partner_mapping import PartnerMapping
from rms.db.models.survey import Survey
from rms.db.models.survey_draft import SurveyDraft
from rms.db.models.user import User
from rms.db.session import Database
from rms.schemas.results import ActionResult
from rms.schemas.survey import form_section
from rms.utils.dates import (
    MONTH_ABBR,
    month_start,
    to_iso,
    to_naive_utc,
    trailing_days,
    trailing_months,
    utcnow,
    year_of,
)
from rms.utils.jsondoc import loads

logger = logging.getLogger("rms.analytics")

TOP_N = 5
TREND_MONTHS = 6
TREND_DAYS = 30
RECENT_DAYS = 30
RECENT_ACTIVITY_LIMIT = 10

FALLBACK_MESSAGE = "Mock data returned due to database unavailability"


@dataclass(frozen=True)
class DateRange:
    """Half-open [start, end) filter on the submission time axis. Either bound may be open."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def __post_init__(self):
        # bounds are held as naive UTC, like every stored timestamp
        for name in ("start", "end"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, to_naive_utc(value))
        if self.start is not None and self.end is not None and self.start >= self.end:
            raise ValidationFailed({"dateRange": ["Start date must be before end date"]})

    @property
    def unbounded(self) -> bool:
        return self.start is None and self.end is None

    def apply(self, stmt, column):
        if self.start is not None:
            stmt = stmt.where(column >= self.start)
        if self.end is not None:
            stmt = stmt.where(column < self.end)
        return stmt

    @property
    def key(self) -> str:
        return f"{to_iso(self.start) or '*'}..{to_iso(self.end) or '*'}"


ALL_TIME = DateRange()


def percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    # half-up, so 62.5 reads as 63
    return int(math.floor(100.0 * part / whole + 0.5))


def completion_rate(submitted: int, drafts: int) -> int:
    return percent(submitted, submitted + drafts)


def growth_rate(current: int, previous: int) -> float:
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 1)


def ncd_names(project_info: dict, project_activities: dict) -> set[str]:
    """Distinct trimmed NCD names named by a survey, from either section."""
    names = set()
    for ncd in (project_info or {}).get("targetedNCDs") or []:
        if isinstance(ncd, str) and ncd.strip():
            names.add(ncd.strip())
    activities = (project_activities or {}).get("ncdActivities") or {}
    if isinstance(activities, dict):
        for ncd in activities:
            if isinstance(ncd, str) and ncd.strip():
                names.add(ncd.strip())
    return names


def ranked(counter: Counter, label: str, limit: Optional[int] = TOP_N) -> list[dict]:
    # count desc, then name asc so equal counts come back in a stable order
    items = sorted(counter.items(), key=lambda kv: (-kv[1], str(kv[0])))
    if limit is not None:
        items = items[:limit]
    return [{label: name, "count": count} for name, count in items]


# ---- sub-queries; each runs in its own session on a worker thread


def _submitted(stmt):
    return stmt.where(Survey.status == "submitted")


def q_count_surveys(db: Session, rng: DateRange, since: Optional[datetime] = None, until: Optional[datetime] = None) -> int:
    stmt = _submitted(select(func.count(Survey.id)))
    stmt = rng.apply(stmt, Survey.submission_date)
    if since is not None:
        stmt = stmt.where(Survey.submission_date >= since)
    if until is not None:
        stmt = stmt.where(Survey.submission_date < until)
    return int(db.execute(stmt).scalar_one())


def q_count_drafts(db: Session) -> int:
    return int(db.execute(select(func.count(SurveyDraft.id))).scalar_one())


def q_count_users(db: Session, since: Optional[datetime] = None, until: Optional[datetime] = None) -> int:
    stmt = select(func.count(User.id))
    if since is not None:
        stmt = stmt.where(User.created_at >= since)
    if until is not None:
        stmt = stmt.where(User.created_at < until)
    return int(db.execute(stmt).scalar_one())


def q_active_users(db: Session, since: datetime) -> int:
    return int(db.execute(select(func.count(User.id)).where(User.last_login_at >= since)).scalar_one())


def q_distinct(db: Session, column, rng: DateRange) -> int:
    stmt = _submitted(select(func.count(distinct(column))).where(column != ""))
    stmt = rng.apply(stmt, Survey.submission_date)
    return int(db.execute(stmt).scalar_one())


def q_ncd_counter(db: Session, rng: DateRange) -> tuple[set[str], Counter]:
    """Distinct NCD names across all surveys, and per-name survey counts for targetedNCDs."""
    stmt = _submitted(select(Survey.project_info_json, Survey.project_activities_json))
    stmt = rng.apply(stmt, Survey.submission_date)
    names: set[str] = set()
    targeted: Counter = Counter()
    for info_json, activities_json in db.execute(stmt):
        info = loads(info_json)
        names |= ncd_names(info, loads(activities_json))
        targeted.update({n.strip() for n in info.get("targetedNCDs") or [] if isinstance(n, str) and n.strip()})
    return names, targeted


def q_grouped(db: Session, column, rng: DateRange) -> Counter:
    stmt = _submitted(select(column, func.count(Survey.id)).where(column != "").group_by(column))
    stmt = rng.apply(stmt, Survey.submission_date)
    return Counter({name: int(n) for name, n in db.execute(stmt)})


def q_users_by_region(db: Session) -> Counter:
    stmt = select(User.region, func.count(User.id)).where(User.region.is_not(None), User.region != "").group_by(User.region)
    return Counter({name: int(n) for name, n in db.execute(stmt)})


def q_timestamps(db: Session, column, since: datetime, rng: Optional[DateRange] = None, submitted: bool = False) -> list[datetime]:
    stmt = select(column).where(column >= since)
    if submitted:
        stmt = _submitted(stmt)
    if rng is not None:
        stmt = rng.apply(stmt, column)
    return [ts for ts in db.execute(stmt).scalars() if ts is not None]


def q_recent_activity(db: Session, limit: int, rng: DateRange, user_id: Optional[int] = None) -> list[dict]:
    stmt = _submitted(select(Survey))
    stmt = rng.apply(stmt, Survey.submission_date)
    if user_id is not None:
        stmt = stmt.where(Survey.user_id == user_id)
    stmt = stmt.order_by(Survey.submission_date.desc(), Survey.id.desc()).limit(limit)
    return [
        {
            "id": str(s.id),
            "organisationName": s.organisation_name,
            "projectName": s.project_name,
            "region": s.region,
            "submissionDate": to_iso(s.submission_date),
            "status": s.status,
            "createdBy": s.created_by_name,
        }
        for s in db.execute(stmt).scalars()
    ]


def q_user_survey_count(db: Session, user_id: int) -> int:
    stmt = _submitted(select(func.count(Survey.id))).where(Survey.user_id == user_id)
    return int(db.execute(stmt).scalar_one())


def q_user_draft(db: Session, user_id: int) -> Optional[dict]:
    stmt = (
        select(SurveyDraft)
        .where(SurveyDraft.user_id == user_id)
        .order_by(SurveyDraft.last_updated.desc())
        .limit(1)
    )
    draft = db.execute(stmt).scalars().first()
    if draft is None:
        return None
    project = form_section(loads(draft.form_data_json), "projectInfo")
    return {
        "id": str(draft.id),
        "title": project.get("projectName") or "Untitled Survey",
        "progress": draft.progress,
        "currentStep": draft.current_step,
        "lastUpdated": to_iso(draft.last_updated),
    }


def q_partner_mappings(db: Session, rng: DateRange) -> dict:
    stmt = rng.apply(select(PartnerMapping.data_json, PartnerMapping.entry_count), PartnerMapping.created_at)
    stmt = stmt.where(PartnerMapping.status == "submitted")
    records = 0
    entries = 0
    regions: Counter = Counter()
    diseases: Counter = Counter()
    years: Counter = Counter()
    organizations: set[str] = set()
    for data_json, entry_count in db.execute(stmt):
        records += 1
        entries += int(entry_count or 0)
        for entry in loads(data_json).get("partnerMappings") or []:
            if entry.get("projectRegion"):
                regions[entry["projectRegion"]] += 1
            if entry.get("disease"):
                diseases[entry["disease"]] += 1
            if entry.get("year"):
                years[int(entry["year"])] += 1
            if (entry.get("organization") or "").strip():
                organizations.add(entry["organization"].strip())
    return {
        "totalRecords": records,
        "totalEntries": entries,
        "organizations": len(organizations),
        "topRegions": ranked(regions, "region"),
        "topDiseases": ranked(diseases, "disease"),
        "byYear": [{"year": y, "count": years[y]} for y in sorted(years)],
    }


# ---- survey data views; each folds every submitted survey once


KEY_ITEMS = 3
DISEASE_ACTIVITY_SAMPLE = 5
ACTIVITY_PARTNERS = 2
CARE_ACTIVITY_LIMIT = 20
STAKEHOLDER_LIMIT = 10
POPULATION_PER_ACTIVITY = 50000

FUNDING_TYPES = (
    (re.compile(r"^Ghana Government$"), "Government"),
    (re.compile(r"International|WHO|USAID", re.I), "International"),
    (re.compile(r"\bUN\b"), "International"),
    (re.compile(r"Foundation|Gates", re.I), "Foundation"),
    (re.compile(r"Private|Individual", re.I), "Private"),
)

STAKEHOLDER_TYPES = (
    (re.compile(r"^Ghana Government$"), "Government"),
    (re.compile(r"NGO", re.I), "NGO"),
    (re.compile(r"^Private$"), "Private"),
    (re.compile(r"Academic|Research", re.I), "Academic"),
)


def classify(value: str, rules, default: str) -> str:
    for pattern, label in rules:
        if pattern.search(value or ""):
            return label
    return default


def budget_amount(value) -> float:
    """Numeric value of a free-text budget such as "GHS 12,500"; unreadable budgets count as 0."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    digits = re.sub(r"[^\d.\-]", "", str(value or ""))
    try:
        return float(digits)
    except ValueError:
        return 0.0


def first_distinct(values, limit: int = KEY_ITEMS) -> list:
    out: list = []
    for v in values:
        if v and v not in out:
            out.append(v)
            if len(out) == limit:
                break
    return out


def _whole(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _targeted(info: dict) -> list[str]:
    return sorted({n.strip() for n in info.get("targetedNCDs") or [] if isinstance(n, str) and n.strip()})


def _timeline(info: dict) -> str:
    return f"{year_of(info.get('startDate')) or 'Unknown'}-{year_of(info.get('endDate')) or 'Ongoing'}"


def q_submitted_surveys(db: Session) -> list[Survey]:
    stmt = _submitted(select(Survey)).order_by(Survey.submission_date, Survey.id)
    return list(db.execute(stmt).scalars())


def q_regional_activity(db: Session) -> list[dict]:
    by_region: dict[str, list[Survey]] = defaultdict(list)
    for s in q_submitted_surveys(db):
        if s.region:
            by_region[s.region].append(s)

    rows = []
    for region, surveys in by_region.items():
        projects = sum(_whole(loads(s.project_info_json).get("totalProjects")) for s in surveys)
        years = Counter(str(s.submission_date.year) for s in surveys if s.submission_date)
        rows.append(
            {
                "region": region,
                "activities": len(surveys),
                "keyPrograms": first_distinct(s.project_name for s in surveys),
                "keyImplementers": first_distinct(s.organisation_name for s in surveys),
                "populationReached": (len(surveys) + projects) * POPULATION_PER_ACTIVITY,
                "yearData": {y: years[y] for y in sorted(years)},
                "partners": first_distinct(s.sector for s in surveys),
            }
        )
    rows.sort(key=lambda r: (-r["activities"], r["region"]))
    return rows


def q_disease_activities(db: Session) -> list[dict]:
    by_disease: dict[str, list[dict]] = defaultdict(list)
    for s in q_submitted_surveys(db):
        info = loads(s.project_info_json)
        partners = [p.get("organisationName") for p in loads(s.extra_json).get("partners") or [] if isinstance(p, dict)]
        activity = {
            "id": str(s.id),
            "name": s.project_name,
            "region": s.region,
            "implementer": s.organisation_name,
            "status": s.status,
            "timeline": _timeline(info),
            "partners": first_distinct(partners, ACTIVITY_PARTNERS),
        }
        for disease in _targeted(info):
            by_disease[disease].append(activity)

    rows = [
        {"disease": disease, "totalActivities": len(acts), "activities": acts[:DISEASE_ACTIVITY_SAMPLE]}
        for disease, acts in by_disease.items()
    ]
    rows.sort(key=lambda r: (-r["totalActivities"], r["disease"]))
    return rows


def q_care_continuum(db: Session) -> list[dict]:
    """Newest described activities first."""
    rows = []
    for s in reversed(q_submitted_surveys(db)):
        acts = loads(s.project_activities_json)
        description = acts.get("activityDescription")
        if not isinstance(description, str) or not description.strip():
            continue
        ncd_activities = acts.get("ncdActivities")
        if isinstance(ncd_activities, dict) and ncd_activities:
            diseases = sorted(ncd_activities)
        else:
            diseases = _targeted(loads(s.project_info_json))
        rows.append(
            {
                "id": str(s.id),
                "activity": description.strip(),
                "stage": ", ".join(str(stage) for stage in acts.get("continuumOfCare") or []),
                "region": s.region,
                "partner": s.organisation_name,
                "targetGroup": acts.get("primaryTargetPopulation") or "",
                "diseases": diseases,
                "status": s.status,
            }
        )
        if len(rows) == CARE_ACTIVITY_LIMIT:
            break
    return rows


def q_project_timeline(db: Session) -> list[dict]:
    years = Counter(year_of(loads(s.project_info_json).get("startDate")) for s in q_submitted_surveys(db))
    years.pop(None, None)
    return [{"Year": y, "Number of Projects": years[y]} for y in sorted(years)]


def q_sector_data(db: Session) -> list[dict]:
    return [
        {"Sector": row["sector"], "Count": row["count"]}
        for row in ranked(q_grouped(db, Survey.sector, ALL_TIME), "sector", limit=None)
    ]


def q_funding_data(db: Session) -> list[dict]:
    amounts: dict[str, float] = defaultdict(float)
    counts: Counter = Counter()
    for s in q_submitted_surveys(db):
        info = loads(s.project_info_json)
        source = (info.get("fundingSource") or "").strip()
        if not source:
            continue
        counts[source] += 1
        amounts[source] += budget_amount(info.get("estimatedBudget"))

    total = sum(amounts.values())
    rows = [
        {
            "source": source,
            "amount": amount,
            "count": counts[source],
            "percentage": percent(amount, total),
            "type": classify(source, FUNDING_TYPES, "Mixed"),
        }
        for source, amount in amounts.items()
    ]
    rows.sort(key=lambda r: (-r["amount"], r["source"]))
    return rows


def q_stakeholder_details(db: Session) -> list[dict]:
    by_org: dict[str, list[Survey]] = defaultdict(list)
    for s in q_submitted_surveys(db):
        if s.organisation_name:
            by_org[s.organisation_name].append(s)

    rows = []
    for name, surveys in by_org.items():
        first = surveys[0]
        org = loads(first.organisation_info_json)
        rows.append(
            {
                "id": name,
                "name": name,
                "type": classify(first.sector, STAKEHOLDER_TYPES, "Other"),
                "sector": first.sector,
                "region": first.region,
                "contact": {
                    "phone": org.get("hqPhoneNumber") or "",
                    "email": org.get("email") or "",
                    "website": org.get("website") or "",
                },
                "activities": [s.project_name for s in surveys[:KEY_ITEMS]],
                "description": f"Leading organization in {first.sector} sector",
                "projectsInvolved": len(surveys),
            }
        )
    rows.sort(key=lambda r: (-r["projectsInvolved"], r["name"]))
    return rows[:STAKEHOLDER_LIMIT]


def q_region_activity_totals(db: Session) -> dict:
    return {region: {"total": count} for region, count in sorted(q_grouped(db, Survey.region, ALL_TIME).items())}


# view name -> (query, what it is called in messages)
SURVEY_DATA_VIEWS: dict[str, tuple[Callable[[Session], Any], str]] = {
    "regional-activity": (q_regional_activity, "regional activity data"),
    "disease-activities": (q_disease_activities, "disease activities data"),
    "care-continuum": (q_care_continuum, "care continuum activities"),
    "project-timeline": (q_project_timeline, "project timeline data"),
    "sectors": (q_sector_data, "sector data"),
    "funding": (q_funding_data, "funding data"),
    "stakeholders": (q_stakeholder_details, "stakeholder details"),
    "region-totals": (q_region_activity_totals, "region activity totals"),
}


# ---- bucketing


def monthly_buckets(now: datetime, surveys: list[datetime], drafts: list[datetime], months: int = TREND_MONTHS) -> list[dict]:
    survey_counts = Counter((ts.year, ts.month) for ts in surveys)
    draft_counts = Counter((ts.year, ts.month) for ts in drafts)
    return [
        {
            "month": MONTH_ABBR[m - 1],
            "year": y,
            "surveys": survey_counts.get((y, m), 0),
            "drafts": draft_counts.get((y, m), 0),
        }
        for y, m in trailing_months(now, months)
    ]


def daily_buckets(days: list[datetime], **series: list[datetime]) -> list[dict]:
    counts = {name: Counter(ts.date() for ts in values) for name, values in series.items()}
    out = []
    for day in days:
        row = {"date": day.date().isoformat()}
        for name, counter in counts.items():
            row[name] = counter.get(day.date(), 0)
        out.append(row)
    return out


def admin_stats_snapshot(amounts: tuple[int, int, int, int], now: datetime) -> dict:
    names = ("Total Activities", "Active Partners", "Regions Covered", "NCD Focus Areas")
    return {
        "stats": [{"id": i, "name": name, "amount": amount} for i, (name, amount) in enumerate(zip(names, amounts), 1)],
        "lastUpdated": to_iso(now),
    }


def admin_stats_fallback(now: datetime) -> dict:
    return admin_stats_snapshot((640, 156, 16, 15), now)


def dashboard_stats_fallback(now: datetime) -> dict:
    return {
        "totalSurveys": 0,
        "totalDrafts": 0,
        "totalUsers": 0,
        "recentSurveys": 0,
        "recentActivity": 0,
        "completionRate": 0,
        "topRegions": [],
        "topSectors": [],
        "monthlyTrends": monthly_buckets(now, [], []),
    }


class AnalyticsEngine:
    """Read-only statistics over submitted records.

    Independent sub-queries are fanned out to worker threads, each with its
    own session, and joined before the result is assembled. Public methods
    return an ActionResult and never raise.
    """

    def __init__(self, database: Database, clock: Callable[[], datetime] = utcnow):
        self.database = database
        self.clock = clock

    async def _gather(self, *calls):
        return await asyncio.gather(*(run_in_threadpool(self.database.run, fn, *args) for fn, *args in calls))

    async def _guarded(self, what: str, coro, message: str) -> ActionResult:
        try:
            data = await coro
        except ValidationFailed as exc:
            return ActionResult.failed(exc)
        except Exception:
            logger.exception("Computing %s failed", what)
            return ActionResult(success=False, message=f"Failed to fetch {what}")
        return ActionResult.ok(data=data, message=message)

    # ---- computations (may raise)

    async def _basic_counts(self, rng: DateRange) -> dict:
        now = self.clock()
        surveys, drafts, users, recent, last_day = await self._gather(
            (q_count_surveys, rng),
            (q_count_drafts,),
            (q_count_users,),
            (q_count_surveys, rng, now - timedelta(days=RECENT_DAYS)),
            (q_count_surveys, rng, now - timedelta(days=1)),
        )
        return {
            "totalSurveys": surveys,
            "totalDrafts": drafts,
            "totalUsers": users,
            "recentSurveys": recent,
            "recentActivity": last_day,
            "completionRate": completion_rate(surveys, drafts),
        }

    async def _admin_stats(self, rng: DateRange = ALL_TIME) -> dict:
        total, partners, regions, (ncds, _) = await self._gather(
            (q_count_surveys, rng),
            (q_distinct, Survey.organisation_name, rng),
            (q_distinct, Survey.region, rng),
            (q_ncd_counter, rng),
        )
        return admin_stats_snapshot((total, partners, regions, len(ncds)), self.clock())

    async def _monthly_trends(self, rng: DateRange, months: int = TREND_MONTHS) -> list[dict]:
        now = self.clock()
        oldest = trailing_months(now, months)[0]
        since = month_start(*oldest)
        surveys, drafts = await self._gather(
            (q_timestamps, Survey.submission_date, since, rng, True),
            (q_timestamps, SurveyDraft.created_at, since),
        )
        return monthly_buckets(now, surveys, drafts, months)

    async def _dashboard_stats(self, rng: DateRange = ALL_TIME) -> dict:
        counts, regions, sectors, trends = await asyncio.gather(
            self._basic_counts(rng),
            run_in_threadpool(self.database.run, q_grouped, Survey.region, rng),
            run_in_threadpool(self.database.run, q_grouped, Survey.sector, rng),
            self._monthly_trends(rng),
        )
        return {
            **counts,
            "topRegions": ranked(regions, "region"),
            "topSectors": ranked(sectors, "sector"),
            "monthlyTrends": trends,
        }

    async def _user_dashboard(self, user_id: int) -> dict:
        submitted, draft, recent = await self._gather(
            (q_user_survey_count, user_id),
            (q_user_draft, user_id),
            (q_recent_activity, TOP_N, ALL_TIME, user_id),
        )
        in_progress = 1 if draft is not None else 0
        return {
            "userId": str(user_id),
            "totalSurveys": submitted + in_progress,
            "completedSurveys": submitted,
            "inProgressSurveys": in_progress,
            "completionRate": completion_rate(submitted, in_progress),
            "activeDraft": draft,
            "recentSubmissions": recent,
        }

    async def _admin_analytics(self) -> dict:
        now = self.clock()
        month_ago = now - timedelta(days=30)
        two_months_ago = now - timedelta(days=60)
        days = trailing_days(now, TREND_DAYS)

        (
            surveys,
            drafts,
            users,
            active_users,
            users_now,
            users_before,
            surveys_now,
            surveys_before,
            submitted_ts,
            draft_ts,
            registered_ts,
            users_by_region,
            surveys_by_region,
            sectors,
            (_, targeted),
        ) = await self._gather(
            (q_count_surveys, ALL_TIME),
            (q_count_drafts,),
            (q_count_users,),
            (q_active_users, month_ago),
            (q_count_users, month_ago),
            (q_count_users, two_months_ago, month_ago),
            (q_count_surveys, ALL_TIME, month_ago),
            (q_count_surveys, ALL_TIME, two_months_ago, month_ago),
            (q_timestamps, Survey.submission_date, days[0], None, True),
            (q_timestamps, SurveyDraft.last_updated, days[0]),
            (q_timestamps, User.created_at, days[0]),
            (q_users_by_region,),
            (q_grouped, Survey.region, ALL_TIME),
            (q_grouped, Survey.sector, ALL_TIME),
            (q_ncd_counter, ALL_TIME),
        )

        regions = sorted(
            set(users_by_region) | set(surveys_by_region),
            key=lambda r: (-users_by_region.get(r, 0), -surveys_by_region.get(r, 0), r),
        )
        ncd_total = sum(targeted.values())

        return {
            "kpis": {
                "totalUsers": users,
                "totalSurveys": surveys,
                "totalDrafts": drafts,
                "completionRate": completion_rate(surveys, drafts),
                "activeUsers": active_users,
                "userGrowthRate": growth_rate(users_now, users_before),
                "surveyGrowthRate": growth_rate(surveys_now, surveys_before),
            },
            "systemMetrics": {
                "surveySubmissionTrend": daily_buckets(days, submitted=submitted_ts, drafts=draft_ts),
                "userRegistrationTrend": daily_buckets(days, registrations=registered_ts),
                "regionDistribution": [
                    {"region": r, "users": users_by_region.get(r, 0), "surveys": surveys_by_region.get(r, 0)}
                    for r in regions
                ],
                # every stored survey is a submitted one, so completion is the submitted share
                "sectorAnalysis": [
                    {"sector": row["sector"], "count": row["count"], "completion": 100 if row["count"] else 0}
                    for row in ranked(sectors, "sector", limit=None)
                ],
                "ncdFocusAreas": [
                    {
                        "area": row["area"],
                        "count": row["count"],
                        "percentage": percent(row["count"], ncd_total),
                    }
                    for row in ranked(targeted, "area", limit=None)
                ],
            },
        }

    # ---- public operations

    async def basic_counts(self, rng: Optional[DateRange] = None) -> ActionResult:
        return await self._guarded("basic counts", self._basic_counts(rng or ALL_TIME), "Stats retrieved successfully")

    async def admin_stats(self, rng: Optional[DateRange] = None) -> ActionResult:
        return await self._guarded("admin stats", self._admin_stats(rng or ALL_TIME), "Admin stats retrieved successfully")

    async def top_regions(self, rng: Optional[DateRange] = None, limit: int = TOP_N) -> ActionResult:
        async def compute():
            counter = await run_in_threadpool(self.database.run, q_grouped, Survey.region, rng or ALL_TIME)
            return ranked(counter, "region", limit)

        return await self._guarded("top regions", compute(), "Top regions retrieved successfully")

    async def top_sectors(self, rng: Optional[DateRange] = None, limit: int = TOP_N) -> ActionResult:
        async def compute():
            counter = await run_in_threadpool(self.database.run, q_grouped, Survey.sector, rng or ALL_TIME)
            return ranked(counter, "sector", limit)

        return await self._guarded("top sectors", compute(), "Top sectors retrieved successfully")

    async def monthly_trends(self, rng: Optional[DateRange] = None, months: int = TREND_MONTHS) -> ActionResult:
        return await self._guarded(
            "monthly trends", self._monthly_trends(rng or ALL_TIME, months), "Monthly trends retrieved successfully"
        )

    async def recent_activity(self, limit: int = RECENT_ACTIVITY_LIMIT, rng: Optional[DateRange] = None) -> ActionResult:
        return await self._guarded(
            "recent survey activity",
            run_in_threadpool(self.database.run, q_recent_activity, limit, rng or ALL_TIME),
            "Recent survey activity retrieved successfully",
        )

    async def dashboard_stats(self, rng: Optional[DateRange] = None) -> ActionResult:
        return await self._guarded(
            "dashboard stats", self._dashboard_stats(rng or ALL_TIME), "Dashboard stats retrieved successfully"
        )

    async def user_dashboard(self, user_id: int) -> ActionResult:
        return await self._guarded("user dashboard", self._user_dashboard(int(user_id)), "Dashboard data retrieved successfully")

    async def admin_analytics(self) -> ActionResult:
        return await self._guarded("admin analytics", self._admin_analytics(), "Admin analytics generated successfully")

    async def partner_mapping_summary(self, rng: Optional[DateRange] = None) -> ActionResult:
        return await self._guarded(
            "partner mapping summary",
            run_in_threadpool(self.database.run, q_partner_mappings, rng or ALL_TIME),
            "Partner mapping summary retrieved successfully",
        )

    # ---- cached statistics surface

    async def cached_admin_stats(self, cache: StatsCache) -> ActionResult:
        data, is_fallback = await cache.get_with_fallback(
            self._admin_stats,
            key="admin-stats",
            fallback=admin_stats_fallback(self.clock()),
            tags=(CacheTag.ADMIN_STATS, CacheTag.SURVEYS),
        )
        if is_fallback:
            return ActionResult.ok(data=data, message=FALLBACK_MESSAGE, is_fallback=True)
        return ActionResult.ok(data=data, message="Admin stats retrieved successfully")

    async def cached_dashboard_stats(self, cache: StatsCache, rng: Optional[DateRange] = None) -> ActionResult:
        rng = rng or ALL_TIME
        fallback = dashboard_stats_fallback(self.clock())
        if rng.unbounded:
            data, is_fallback = await cache.get_with_fallback(
                self._dashboard_stats,
                key="dashboard-stats",
                fallback=fallback,
                tags=(CacheTag.DASHBOARD_STATS, CacheTag.SURVEYS, CacheTag.USERS),
            )
        else:
            # only the all-time view is cached; ranged views are computed per request
            try:
                data, is_fallback = await self._dashboard_stats(rng), False
            except Exception:
                logger.exception("Computing dashboard stats for %s failed; serving fallback snapshot", rng.key)
                data, is_fallback = fallback, True
        if is_fallback:
            return ActionResult.ok(data=data, message=FALLBACK_MESSAGE, is_fallback=True)
        return ActionResult.ok(data=data, message="Dashboard stats retrieved successfully")

    async def cached_partner_mapping_summary(self, cache: StatsCache) -> ActionResult:
        async def compute():
            return await run_in_threadpool(self.database.run, q_partner_mappings, ALL_TIME)

        try:
            data = await cache.get_cached(compute, key="partner-mappings:summary", tags=(CacheTag.PARTNER_MAPPINGS,))
        except Exception:
            logger.exception("Computing partner mapping summary failed")
            return ActionResult(success=False, message="Failed to fetch partner mapping summary")
        return ActionResult.ok(data=data, message="Partner mapping summary retrieved successfully")

    async def survey_data(self, cache: StatsCache, view: str) -> ActionResult:
        """One of the SURVEY_DATA_VIEWS, cached until surveys change."""
        if view not in SURVEY_DATA_VIEWS:
            return ActionResult.failed(NotFound(f"Unknown survey data view '{view}'"))
        query, what = SURVEY_DATA_VIEWS[view]

        async def compute():
            return await run_in_threadpool(self.database.run, query)

        try:
            data = await cache.get_cached(compute, key=f"survey-data:{view}", tags=(CacheTag.SURVEY_DATA, CacheTag.SURVEYS))
        except Exception:
            logger.exception("Computing %s failed", what)
            return ActionResult(success=False, message=f"Failed to fetch {what}")
        return ActionResult.ok(data=data, message=f"{what[0].upper()}{what[1:]} retrieved successfully")

    def invalidate_survey_data(self, cache: StatsCache) -> int:
        return cache.invalidate([CacheTag.SURVEY_DATA])
