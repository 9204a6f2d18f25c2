"""
Prompt Design: the narrative service receives ONLY pre-computed aggregates.

The model is an explanation layer. It must:
- Describe the metrics, rankings and flagged patterns it is given
- NOT compute new numbers or judge anyone as cheating
- Answer in strict JSON so the output can be validated and normalized
"""

import json

from insight_inputs import SalesPerformanceInput, WeeklyInsightInput
from metric_definitions import metric_glossary
from metrics import AggregatedMetrics, compute_rankings
from red_flags import SalesmanRedFlags, count_red_flags_by_severity

DAILY_RANKING_LIMIT = 2

# -----------------------------------------------------------------------------
# SYSTEM PROMPTS
# -----------------------------------------------------------------------------

DAILY_SYSTEM_PROMPT = """Anda adalah asisten analitik sales. Analisis data kunjungan sales harian dan berikan insight yang dapat ditindaklanjuti.

ATURAN PENTING:
1. Keluarkan HANYA JSON yang valid dengan format yang persis seperti ditentukan
2. Jangan menuduh siapa pun melakukan kecurangan atau pelanggaran - gunakan frasa seperti "perlu ditinjau" atau "perlu perhatian"
3. Ringkas namun spesifik
4. Fokus pada insight yang dapat ditindaklanjuti

FORMAT OUTPUT (JSON ketat):
{
  "date": "YYYY-MM-DD",
  "highlights": ["array string berisi 2-3 hal positif"],
  "risks": ["array string berisi 2-3 risiko atau hal yang perlu perhatian"],
  "actions": ["array string berisi 2-3 tindakan yang direkomendasikan"],
  "notes": "string tunggal untuk konteks tambahan"
}"""

WEEKLY_SYSTEM_PROMPT = """Anda adalah asisten analitik sales. Buat laporan mingguan dengan format ringkas + detail.

ATURAN PENTING:
1. Keluarkan HANYA JSON yang valid dengan format yang persis seperti ditentukan
2. Jangan menuduh siapa pun melakukan kecurangan atau pelanggaran
3. Hindari kata "bendera" atau "red flag" dalam output
4. Ringkas namun spesifik
5. Ikuti definisi ketat Sorotan/Risiko/Tindakan di bawah

FORMAT OUTPUT (JSON ketat):
{
  "period": { "from": "YYYY-MM-DD", "to": "YYYY-MM-DD" },
  "summary": {
    "highlights": ["array string berisi 5 poin sorotan"],
    "risks": ["array string berisi 1-3 risiko"],
    "actions": ["array string berisi 1-3 tindakan mitigasi"]
  },
  "detail": "paragraf singkat (3-5 kalimat) yang merangkum performa minggu ini",
  "notes": "string tunggal untuk konteks tambahan"
}

DEFINISI KETAT:
- Sorotan: HANYA laporan fakta (metrik, top performer, deskripsi kejadian). Tidak boleh berisi risiko, saran, atau prediksi.
- Risiko: HANYA hal yang dapat menyebabkan kerugian bisnis dalam 30 hari ke depan. Maks 1 risiko utama + 2 risiko sekunder.
- Tindakan: HANYA langkah mitigasi yang secara langsung menjawab risiko yang disebutkan. Tidak boleh ada aksi yang tidak terkait risiko.
- Setiap tindakan WAJIB menyebut target risiko (contoh: "Mitigasi Risiko 1: ...").
- Format Risiko Utama WAJIB satu kalimat: "[WHAT], which may [BUSINESS IMPACT], if not addressed within [TIMEFRAME]."
- Risiko sekunder boleh singkat tanpa penjelasan.
- Jika tidak ada risiko valid, isi risks dengan: ["Tidak ada risiko kritis minggu ini."] dan actions harus [].

FORMAT SOROTAN (WAJIB 5 poin, urutan tetap):
1) Total penjualan + unit terjual, bandingkan dengan minggu sebelumnya.
2) Rata-rata konversi, bandingkan dengan minggu sebelumnya.
3) Performa leader terbaik (sebutkan nama).
4) Sales dengan performa terbaik (sebutkan nama).
5) Daerah (region) dengan kunjungan paling ramai."""

SALES_PERFORMANCE_SYSTEM_PROMPT = """Anda adalah analis performa sales. Buat insight singkat dan actionable berdasarkan data agregat.

ATURAN PENTING:
1. Keluarkan HANYA JSON valid sesuai format yang diminta.
2. Jangan mengada-ada. Jika data tidak cukup, tulis insight yang aman.
3. Setiap insight 1 kalimat, maksimal 20 kata.
4. Gunakan angka persis yang diberikan.

FORMAT OUTPUT:
{
  "period": { "from": "YYYY-MM-DD", "to": "YYYY-MM-DD" },
  "insights": ["3-5 kalimat insight"]
}"""


def _to_json(data) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def build_daily_prompt_data(metrics: AggregatedMetrics, red_flags: list[SalesmanRedFlags]) -> dict:
    """
    Structured input for the daily narrative: day totals, the two best and
    worst converters, the two best sellers and the flagged patterns.
    No row-level events are included.
    """
    counts = count_red_flags_by_severity(red_flags)
    rankings = compute_rankings(metrics, limit=DAILY_RANKING_LIMIT)
    by_id = {m.salesman_id: m for m in metrics.salesmen_metrics}

    return {
        "date": metrics.date,
        "summary": {
            "total_visits": metrics.total_visits,
            "total_salesmen": metrics.total_salesmen,
            "total_sales_amount": metrics.total_sales_amount,
            "total_sales_qty": metrics.total_sales_qty,
            "avg_conversion_rate": metrics.avg_conversion_rate,
        },
        "top_by_conversion": [
            {
                "name": r["salesman_name"],
                "conversion_rate": r["conversion_rate"],
                "sales_amount": by_id[r["salesman_id"]].total_sales_amount,
            }
            for r in rankings["top_by_conversion"]
        ],
        "bottom_by_conversion": [
            {
                "name": r["salesman_name"],
                "conversion_rate": r["conversion_rate"],
                "visits": by_id[r["salesman_id"]].visit_count,
            }
            for r in rankings["bottom_by_conversion"]
        ],
        "top_by_sales": [
            {
                "name": r["salesman_name"],
                "sales_amount": r["total_sales_amount"],
                "qty": by_id[r["salesman_id"]].total_sales_qty,
            }
            for r in rankings["top_by_sales"]
        ],
        "red_flags": {
            "total_count": len(red_flags),
            "high_severity": counts["high"],
            "medium_severity": counts["medium"],
            "low_severity": counts["low"],
            "details": [
                {"salesman": sr.salesman_name, "flags": [f.title for f in sr.red_flags]}
                for sr in red_flags
            ],
        },
    }


def build_daily_user_prompt(metrics: AggregatedMetrics, red_flags: list[SalesmanRedFlags]) -> str:
    data = _to_json(build_daily_prompt_data(metrics, red_flags))
    return f"""Analisis data kunjungan sales tanggal {metrics.date}:

{data}

Definisi metrik:
{metric_glossary(["visit_count", "conversion_rate", "avg_conversion_rate"])}

Berikan insight sesuai format JSON yang ditentukan."""


def build_weekly_user_prompt(weekly_input: WeeklyInsightInput) -> str:
    data = _to_json(weekly_input.to_dict())
    return f"""Analisis data mingguan berikut dan buat laporan sesuai format JSON:

{data}

Patuhi DEFINISI KETAT. Pastikan:
- Sorotan hanya fakta.
- Risiko hanya risiko berdampak 30 hari ke depan, bukan peluang.
- Tindakan harus langsung merespons Risiko dan menyebut "Risiko 1/2/3".
- Risiko utama harus satu kalimat dengan format: "[WHAT], which may [BUSINESS IMPACT], if not addressed within [TIMEFRAME]."
- Sorotan harus mengikuti urutan 1-5 sesuai FORMAT SOROTAN dan menyertakan perbandingan vs minggu sebelumnya.
"""


def build_sales_performance_user_prompt(performance_input: SalesPerformanceInput) -> str:
    period = performance_input.period
    data = _to_json(performance_input.to_dict())
    return f"""Data agregat periode {period.from_date} - {period.to_date}:

{data}

Definisi metrik:
{metric_glossary(["conversion_rate", "visit_per_day_bins"])}

Hasilkan 3-5 insight yang actionable. Contoh pola:
- Sales unggul karena fokus tipe outlet tertentu (jika outlet_type_share tersedia).
- Waktu kunjungan tertentu memiliki success rate rendah/tinggi (jika time_of_day tersedia).
- Pola kunjungan per hari vs konversi (jika visit_per_day_bins tersedia).
"""
