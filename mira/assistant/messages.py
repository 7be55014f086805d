"""User-facing assistant utterances (Turkish)."""

from __future__ import annotations

GREETING = "Merhaba! Ben AI asistanınız. Size nasıl yardımcı olabilirim?"

COMPLETION_FAILED = "Üzgünüm, bir hata oluştu. Lütfen tekrar deneyin."

REMINDER_FAILED = "Hatırlatıcı oluşturulurken bir hata oluştu."
REMINDER_CANCELLED = "Hatırlatıcı oluşturma iptal edildi."

MIC_HELP = (
    "Sesli komut vermek için mikrofon izni vermeniz gerekiyor. Tarayıcınızın izin isteğini onaylayın. "
    "Konuşmanız otomatik olarak metne çevrilip gönderilecektir."
)
MIC_PERMISSION_DENIED = (
    "Mikrofon izni reddedilmiş görünüyor. Sesli komut vermek için tarayıcı ayarlarından mikrofon iznini "
    "etkinleştirmeniz gerekiyor. Mobil cihazlarda genellikle adres çubuğunun yanındaki kilit simgesine "
    "tıklayarak izinleri yönetebilirsiniz."
)
MIC_ACCESS_FAILED = (
    "Sesli komut vermek için mikrofon izni vermeniz gerekiyor. Tarayıcınızın izin isteğini onaylayın. "
    "Eğer izin penceresi görünmüyorsa, adres çubuğunun yanındaki izin simgesine tıklayarak izinleri "
    "yönetebilirsiniz."
)
MOBILE_WEBKIT_REMEDIATION = (
    'iOS cihazlarda mikrofon izni vermek için Safari ayarlarından "Kamera ve Mikrofon Erişimi" bölümünü '
    "kontrol edin. Ayarlar > Safari > Kamera ve Mikrofon Erişimi yolunu izleyebilirsiniz."
)
DESKTOP_WEBKIT_REMEDIATION = (
    "Safari tarayıcısında mikrofon izni vermek için: Ayarlar > Safari > Kamera ve Mikrofon Erişimi "
    "bölümünden bu web sitesine izin vermeniz gerekiyor."
)
RECORDER_FAILED = "Ses kaydı başlatılamadı. Tarayıcınız bu özelliği desteklemiyor olabilir."
SPEECH_FAILED = "Ses tanıma sırasında bir hata oluştu. Lütfen tekrar deneyin veya yazarak mesaj gönderin."


def reminder_created(title: str, date: str, time: str, description: str) -> str:
    return f"Hatırlatıcı başarıyla oluşturuldu:\n- {title}\n- {date} {time}\n- {description}"


def app_opened(app_name: str, native: bool) -> str:
    if native:
        return f"{app_name} uygulaması açıldı."
    return f"{app_name} web sayfası açıldı."


def app_open_failed(app_name: str) -> str:
    return f"{app_name} açılırken bir hata oluştu."


def app_open_cancelled(app_name: str) -> str:
    return f"{app_name} açma işlemi iptal edildi."


def transcript_not_sent(text: str) -> str:
    return (
        f'"{text}" mesajınız gönderilemedi. Lütfen önce bekleyen işlemi onaylayın veya iptal edin, '
        "sonra tekrar deneyin."
    )


def media_search_pending(app_name: str, query: str) -> str:
    return f'{app_name}\'dan "{query}" açmak istediğinizi anladım. Onaylıyor musunuz?'
