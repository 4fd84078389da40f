"""
Metrics Collector - Track job runs and notification delivery counts
"""
from datetime import datetime, timedelta
from collections import defaultdict
from threading import Lock
from typing import Dict, List
import statistics
from utils.timezone import get_local_time


class MetricsCollector:
    """Collects in-memory metrics for the reminder, revert and cleanup jobs"""

    def __init__(self, max_age_days: int = 7, max_entries: int = 10000):
        self.metrics = defaultdict(list)
        self.max_metrics_age_days = max_age_days
        self.max_entries = max_entries
        self._lock = Lock()

    def record_job_duration(self, job: str, duration_seconds: float, success: bool = True):
        """Record how long one job tick took"""
        self._add_metric('job_runs', {
            'timestamp': get_local_time(),
            'job': job,
            'duration': duration_seconds,
            'success': success
        })

    def record_dispatch(self, report):
        """Record the delivery counters of a DispatchReport"""
        self._add_metric('dispatch', {
            'timestamp': get_local_time(),
            'kind': report.kind,
            'in_app_written': report.in_app_written,
            'push_sent': report.push_sent,
            'push_failed': report.push_failed,
            'sms_sent': report.sms_sent,
            'sms_failed': report.sms_failed,
            'sms_limited': report.sms_limited,
        })

    def record_provider_call(self, provider: str, duration_ms: float, success: bool):
        """Record a push or SMS provider round trip"""
        self._add_metric('provider_calls', {
            'timestamp': get_local_time(),
            'provider': provider,
            'duration_ms': duration_ms,
            'success': success
        })

    def record_error(self, error_type: str, error_message: str):
        """Record error occurrences"""
        self._add_metric('errors', {
            'timestamp': get_local_time(),
            'error_type': error_type,
            'error_message': error_message[:200]
        })

    def get_metrics_summary(self, hours: int = 24) -> Dict:
        """Get a summary of metrics for the specified time period"""
        self._cleanup_old_metrics()

        cutoff_time = get_local_time() - timedelta(hours=hours)
        return {
            'period_hours': hours,
            'job_metrics': self._get_job_metrics(cutoff_time),
            'delivery_metrics': self._get_delivery_metrics(cutoff_time),
            'provider_metrics': self._get_provider_metrics(cutoff_time),
            'error_metrics': self._get_error_metrics(cutoff_time)
        }

    def _add_metric(self, metric_type: str, metric_data: Dict):
        with self._lock:
            self.metrics[metric_type].append(metric_data)
            if len(self.metrics[metric_type]) > self.max_entries:
                self.metrics[metric_type] = self.metrics[metric_type][-self.max_entries:]

    def _recent(self, metric_type: str, cutoff_time: datetime) -> List[Dict]:
        with self._lock:
            return [m for m in self.metrics.get(metric_type, []) if m['timestamp'] > cutoff_time]

    def _cleanup_old_metrics(self):
        """Remove metrics older than max_metrics_age_days"""
        cutoff_time = get_local_time() - timedelta(days=self.max_metrics_age_days)

        with self._lock:
            for metric_type in self.metrics:
                self.metrics[metric_type] = [
                    m for m in self.metrics[metric_type]
                    if m['timestamp'] > cutoff_time
                ]

    def _get_job_metrics(self, cutoff_time: datetime) -> Dict:
        runs = self._recent('job_runs', cutoff_time)

        by_job = defaultdict(list)
        for run in runs:
            by_job[run['job']].append(run)

        job_stats = {}
        for job, job_runs in by_job.items():
            durations = [r['duration'] for r in job_runs]
            job_stats[job] = {
                'runs': len(job_runs),
                'failed_runs': sum(1 for r in job_runs if not r['success']),
                'average_duration': statistics.mean(durations),
                'p95_duration': self._percentile(durations, 95),
                'max_duration': max(durations)
            }

        return {
            'total_runs': len(runs),
            'by_job': job_stats
        }

    def _get_delivery_metrics(self, cutoff_time: datetime) -> Dict:
        reports = self._recent('dispatch', cutoff_time)

        totals = {
            'dispatches': len(reports),
            'in_app_written': 0,
            'push_sent': 0,
            'push_failed': 0,
            'sms_sent': 0,
            'sms_failed': 0,
            'sms_limited': 0,
        }
        for report in reports:
            for key in totals:
                if key != 'dispatches':
                    totals[key] += report[key]

        push_total = totals['push_sent'] + totals['push_failed']
        totals['push_success_rate'] = (totals['push_sent'] / push_total * 100) if push_total > 0 else 100
        return totals

    def _get_provider_metrics(self, cutoff_time: datetime) -> Dict:
        calls = self._recent('provider_calls', cutoff_time)

        if not calls:
            return {
                'total_calls': 0,
                'success_rate': 0,
                'average_duration_ms': 0,
                'by_provider': {}
            }

        by_provider = defaultdict(list)
        for call in calls:
            by_provider[call['provider']].append(call)

        provider_stats = {}
        for provider, provider_calls in by_provider.items():
            durations = [c['duration_ms'] for c in provider_calls]
            provider_stats[provider] = {
                'count': len(provider_calls),
                'average_duration_ms': statistics.mean(durations),
                'success_rate': sum(1 for c in provider_calls if c['success']) / len(provider_calls) * 100
            }

        all_durations = [c['duration_ms'] for c in calls]
        return {
            'total_calls': len(calls),
            'success_rate': sum(1 for c in calls if c['success']) / len(calls) * 100,
            'average_duration_ms': statistics.mean(all_durations),
            'median_duration_ms': statistics.median(all_durations),
            'by_provider': provider_stats
        }

    def _get_error_metrics(self, cutoff_time: datetime) -> Dict:
        errors = self._recent('errors', cutoff_time)

        if not errors:
            return {
                'total_errors': 0,
                'by_type': {}
            }

        by_type = defaultdict(int)
        for error in errors:
            by_type[error['error_type']] += 1

        return {
            'total_errors': len(errors),
            'by_type': dict(by_type),
            'recent_errors': [
                {
                    'timestamp': e['timestamp'].isoformat(),
                    'type': e['error_type'],
                    'message': e['error_message']
                }
                for e in sorted(errors, key=lambda x: x['timestamp'], reverse=True)[:5]
            ]
        }

    def _percentile(self, data: List[float], percentile: int) -> float:
        """Calculate percentile of a list"""
        if not data:
            return 0

        sorted_data = sorted(data)
        index = (percentile / 100) * (len(sorted_data) - 1)

        if index.is_integer():
            return sorted_data[int(index)]
        lower = sorted_data[int(index)]
        upper = sorted_data[int(index) + 1]
        fraction = index - int(index)
        return lower + (upper - lower) * fraction

    def clear_metrics(self):
        """Clear all metrics"""
        with self._lock:
            self.metrics.clear()
