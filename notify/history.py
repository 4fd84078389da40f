# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Job History - Track scheduled job runs over time
"""
from collections import defaultdict, deque
from datetime import timedelta
from threading import Lock
from typing import Dict, List, Optional
import statistics
from utils.timezone import get_local_time


class JobHistory:
    """Keeps the most recent results of each scheduled job"""

    def __init__(self, max_entries: int = 100):
        self.max_entries = max_entries
        self.history: Dict[str, deque] = defaultdict(lambda: deque(maxlen=self.max_entries))
        self._lock = Lock()

    def add_entry(self, job: str, result: Optional[Dict], duration: float, error: Optional[str] = None):
        """Add a job result to history"""
        entry = {
            'timestamp': get_local_time(),
            'duration': duration,
            'success': error is None and (result or {}).get('success', True),
            'result': result or {},
            'error': error,
        }
        with self._lock:
            self.history[job].append(entry)

    def get_statistics(self, job: str, hours: int = 24) -> Dict:
        """Calculate statistics for one job over the given time period"""
        cutoff_time = get_local_time() - timedelta(hours=hours)
        with self._lock:
            recent = [e for e in self.history.get(job, ()) if e['timestamp'] > cutoff_time]

        if not recent:
            return {
                'period_hours': hours,
                'total_runs': 0,
                'successful_runs': 0,
                'failed_runs': 0,
                'success_rate': 0,
                'average_duration': 0,
                'last_run': None,
                'last_successful_run': None,
            }

        successful = [e for e in recent if e['success']]
        durations = [e['duration'] for e in recent]
        last_successful = next((e for e in reversed(recent) if e['success']), None)

        return {
            'period_hours': hours,
            'total_runs': len(recent),
            'successful_runs': len(successful),
            'failed_runs': len(recent) - len(successful),
            'success_rate': len(successful) / len(recent) * 100,
            'average_duration': statistics.mean(durations),
            'last_run': recent[-1]['timestamp'].isoformat(),
            'last_successful_run': last_successful['timestamp'].isoformat() if last_successful else None,
            'last_result': recent[-1]['result'],
        }

    def get_recent_failures(self, job: Optional[str] = None, limit: int = 10) -> List[Dict]:
        """Most recent failed runs, newest first"""
        with self._lock:
            jobs = [job] if job else list(self.history)
            entries = [(name, e) for name in jobs for e in self.history.get(name, ())]

        failures = [
            {
                'job': name,
                'timestamp': e['timestamp'].isoformat(),
                'error': e.get('error') or 'Unknown error',
                'duration': e['duration'],
            }
            for name, e in sorted(entries, key=lambda item: item[1]['timestamp'], reverse=True)
            if not e['success']
        ]
        return failures[:limit]
